"""parallelize: tools to help parallelize session loading with joblib."""

import joblib
import tqdm
from joblib import Parallel, delayed

from .utils import reset_logger


def task(*args, **kwargs):
    """Renames ``delayed`` to ``task``, and sets up logger.

    Provides a decorator to mark a function as a task to run in parallel::

        @task
        def my_task(fn_config, outdir):
            ...
            return result

    """
    reset_logger(use_tqdm=True)  # Make sure TQDM output is turned on
    return delayed(*args, **kwargs)


def run_in_parallel(
    task_list: list,
    n_workers: int = -1,
    show_progressbar=True,
    backend: str = 'loky',
    verbose: bool = False,
):
    """Run a list of tasks in parallel, using joblib + tqdm.

    Args:
        task_list (list): A list of tasks (using @parallelize.task 'delayed' lazy loading)
        n_workers (int): Number of workers to use. Defaults to -1, i.e. use all cores.
        show_progressbar (bool): Show tqdm progress bar (default True)
        backend (str): joblib backend, 'loky' (default) or 'threading'
        verbose (bool): Set to verbose mode (INFO instead of WARNING, default False)

    Returns:
        results (list): Task return values, in task_list order

    Example usage:
        ::

            from .parallelize import task, run_in_parallel

            @task
            def my_task(fn_config, outdir):
                ...
                return result

            for fn in config_files:
                task_list.append(my_task(fn, outdir))

            run_in_parallel(task_list, n_workers=8)

    """
    if backend not in ('loky', 'threading'):
        raise RuntimeError("Need to choose 'loky' or 'threading' as backend.")

    with joblib.parallel_backend(backend):
        # Now switch back to silent / verbose mode
        level = 'INFO' if verbose else 'WARNING'
        reset_logger(use_tqdm=True, level=level)
        retval = Parallel(n_jobs=n_workers)(tqdm.tqdm(task_list, disable=not show_progressbar))

    if backend == 'loky':
        from joblib.externals.loky import get_reusable_executor

        # Loky backend does not clean up jobs (on purpose)
        # https://github.com/joblib/joblib/issues/945
        # This causes issues with pytest.
        # The line below manually kills workers for clean exit
        get_reusable_executor().shutdown(wait=True)
    return retval
