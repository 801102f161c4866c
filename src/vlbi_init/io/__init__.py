"""Default __init__ imports for io submodule."""

from .control import read_jet as read_jet
from .control import read_opt as read_opt
from .control import read_out as read_out
from .frames import ReferenceFrames as ReferenceFrames
from .frames import get_trf_and_crf as get_trf_and_crf
from .ngs import read_ngs as read_ngs
from .vgosdb import find_wrapper as find_wrapper
from .vgosdb import read_vgosdb as read_vgosdb
from .vgosdb import read_wrapper as read_wrapper
from .vso import read_orbit_file as read_orbit_file
from .vso import read_vso as read_vso
