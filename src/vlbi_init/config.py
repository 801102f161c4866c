"""config: Immutable session initialization configuration.

An InitConfig is built once, at the start of a session load, and passed by
reference to every component. Nothing downstream modifies it.
"""

import enum
import os
from dataclasses import dataclass, field, replace

from loguru import logger

from .errors import ConfigurationError, UnknownFormatError
from .utils import load_yaml


class SessionFormat(enum.Enum):
    """Supported session input formats."""

    NGS = 'ngs'
    VSO = 'vso'
    VGOSDB = 'vgosdb'

    @classmethod
    def from_tag(cls, tag: str) -> 'SessionFormat':
        """Look up a format from its tag (case insensitive).

        Args:
            tag (str): Format tag, one of 'ngs', 'vso', 'vgosdb'

        Returns:
            fmt (SessionFormat): Matching format

        Raises:
            UnknownFormatError: if tag is not a known format
        """
        if isinstance(tag, cls):
            return tag
        try:
            return cls(str(tag).strip().lower())
        except ValueError:
            raise UnknownFormatError(
                f'Unknown session format: {tag!r} (expected one of {[f.value for f in cls]})'
            ) from None


class SourceEstimation(enum.Enum):
    """How source coordinates are treated by the downstream estimation."""

    NNR = 'nnr'     # Estimated with a no-net-rotation constraint
    PWL = 'pwl'     # Estimated as piecewise-linear offsets
    NONE = 'none'   # Not estimated, source flags left unchanged


# fmt: off
DEFAULT_INSTITUTION    = 'IVS'
DEFAULT_FREQUENCY_BAND = 'GroupDelayFull_bX'
DEFAULT_WRAPPER_TAG    = 'all'
DEFAULT_WRAPPER_VERSION = 'highest_version'
# fmt: on


@dataclass(frozen=True)
class VgosDbSettings:
    """Table selection settings for vgosDB input."""

    # fmt: off
    institution: str = DEFAULT_INSTITUTION          # Institution tag of wrapper/edit tables, e.g. IVS
    frequency_band: str = DEFAULT_FREQUENCY_BAND    # One of the FREQUENCY_BANDS in vlbi_init.adapters.vgosdb
    wrapper_tag: str = DEFAULT_WRAPPER_TAG          # Wrapper kind tag, e.g. 'all'
    wrapper_version: str = DEFAULT_WRAPPER_VERSION  # Wrapper version number, or 'highest_version'
    # fmt: on

    @classmethod
    def from_dict(cls, d: dict) -> 'VgosDbSettings':
        """Create settings from a dict, substituting defaults for unset values."""
        d = d or {}
        kwargs = {}
        defaults = {
            'institution': DEFAULT_INSTITUTION,
            'frequency_band': DEFAULT_FREQUENCY_BAND,
            'wrapper_tag': DEFAULT_WRAPPER_TAG,
            'wrapper_version': DEFAULT_WRAPPER_VERSION,
        }
        for k, default in defaults.items():
            v = d.get(k)
            if v in (None, ''):
                logger.info(f'Set {k.replace("_", " ")} to default: {default}')
                v = default
            kwargs[k] = str(v)
        return cls(**kwargs)


@dataclass(frozen=True)
class InitConfig:
    """Configuration for the initialization of one VLBI session."""

    # fmt: off
    session_name: str                    # Session name, e.g. 10JAN04XK or 05APR04XA_N004
    year: str                            # Session year, used for directory layout
    data_type: str                       # Input format tag: ngs | vso | vgosdb

    # Paths
    data_root: str = '../DATA'           # Root directory of input data
    data_file: str = None                # Explicit path to input file / vgosDB directory
    opt_root: str = None                 # Root of OPT files (default <data_root>/OPT)
    opt_subdir: str = ''                 # OPT sub-directory
    outlier_root: str = None             # Root of OUT files (default <data_root>/OUTLIER)
    out_subdir: str = ''                 # OUT sub-directory
    jetang_root: str = None              # Root of JET files (default <data_root>/JETANG)
    orbit_file: str = None               # Spacecraft orbit file (VSO input only)
    trf_file: str = None                 # TRF catalog (YAML)
    crf_file: str = None                 # CRF catalog (YAML)

    # Options
    use_opt_files: bool = True           # Read the OPT file if present
    remove_outliers: bool = True         # Apply the OUT outlier list if present
    exclude_jet: bool = False            # Apply the JET jet-angle list
    jet_angle_limit: float = 10.0        # Jet angle threshold (deg)
    qlim: int = 0                        # Maximum accepted delay quality code (None = no cut)
    cable_calibration: bool = True       # Apply cable calibration to delays
    ionosphere_correction: bool = True   # Subtract ionosphere delay
    use_iono_flag: bool = True           # Drop observations with nonzero ionosphere flag
    source_estimation: SourceEstimation = SourceEstimation.NNR
    outlier_tolerance: float = 1.0       # Epoch tolerance for outlier matching (s)

    vgosdb: VgosDbSettings = field(default_factory=VgosDbSettings)
    # fmt: on

    @property
    def format(self) -> SessionFormat:
        """Session input format (raises UnknownFormatError if invalid)."""
        return SessionFormat.from_tag(self.data_type)

    @property
    def opt_dir(self) -> str:
        """Root directory of OPT files."""
        return self.opt_root or os.path.join(self.data_root, 'OPT')

    @property
    def outlier_dir(self) -> str:
        """Root directory of outlier files."""
        return self.outlier_root or os.path.join(self.data_root, 'OUTLIER')

    @property
    def jetang_dir(self) -> str:
        """Root directory of jet angle files."""
        return self.jetang_root or os.path.join(self.data_root, 'JETANG')

    def replace(self, **changes) -> 'InitConfig':
        """Return a copy of the config with fields replaced."""
        return replace(self, **changes)

    @classmethod
    def from_dict(cls, d: dict) -> 'InitConfig':
        """Create an InitConfig from a (nested) dict, as loaded from YAML.

        Args:
            d (dict): Dictionary with keys session_name, year, data_type and
                      optional sections 'paths', 'options', 'vgosdb', 'reference_frames'

        Returns:
            config (InitConfig): Immutable configuration
        """
        for key in ('session_name', 'year', 'data_type'):
            if d.get(key) in (None, ''):
                raise ConfigurationError(f'Missing required config entry: {key}')

        paths = d.get('paths', {}) or {}
        options = d.get('options', {}) or {}
        frames = d.get('reference_frames', {}) or {}

        kwargs = {
            'session_name': str(d['session_name']),
            'year': str(d['year']),
            'data_type': str(d['data_type']).lower(),
            'vgosdb': VgosDbSettings.from_dict(d.get('vgosdb', {})),
            'trf_file': frames.get('trf'),
            'crf_file': frames.get('crf'),
        }

        path_keys = ('data_root', 'data_file', 'opt_root', 'opt_subdir', 'outlier_root',
                     'out_subdir', 'jetang_root', 'orbit_file')
        for k in path_keys:
            if paths.get(k) is not None:
                kwargs[k] = str(paths[k])

        option_keys = ('use_opt_files', 'remove_outliers', 'exclude_jet', 'jet_angle_limit',
                       'qlim', 'cable_calibration', 'ionosphere_correction', 'use_iono_flag',
                       'outlier_tolerance')
        for k in option_keys:
            if k in options:
                kwargs[k] = options[k]

        if 'source_estimation' in options:
            try:
                kwargs['source_estimation'] = SourceEstimation(str(options['source_estimation']).lower())
            except ValueError:
                raise ConfigurationError(
                    f"Unknown source_estimation: {options['source_estimation']!r}"
                ) from None

        return cls(**kwargs)


def load_config(filename: str) -> InitConfig:
    """Load an InitConfig from a YAML file.

    Args:
        filename (str): Path to YAML session configuration

    Returns:
        config (InitConfig): Immutable configuration
    """
    d = load_yaml(filename)
    if not isinstance(d, dict):
        raise ConfigurationError(f'Config file does not contain a mapping: {filename}')
    return InitConfig.from_dict(d)
