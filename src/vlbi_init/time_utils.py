"""time_utils: Epoch conversion helpers."""

import numpy as np
from astropy.time import Time


def ymdhms_to_mjd(
    year: np.ndarray,
    month: np.ndarray,
    day: np.ndarray,
    hour: np.ndarray,
    minute: np.ndarray,
    second: np.ndarray,
) -> tuple[np.ndarray, np.ndarray]:
    """Convert calendar epochs (UTC) to MJD and day-of-year.

    Args:
        year (np.ndarray): Year, e.g. 2017
        month (np.ndarray): Month (1-12)
        day (np.ndarray): Day of month
        hour (np.ndarray): Hour
        minute (np.ndarray): Minute
        second (np.ndarray): Seconds (float)

    Returns:
        mjd (np.ndarray): Modified Julian date (UTC), float64
        doy (np.ndarray): Day of year, int
    """
    year, month, day, hour, minute = (
        np.atleast_1d(np.asarray(x, dtype='int64')) for x in (year, month, day, hour, minute)
    )
    second = np.atleast_1d(np.asarray(second, dtype='float64'))

    # Calendar arithmetic for the time of day: a leap second day still counts 86400 s
    t_day = Time({'year': year, 'month': month, 'day': day}, format='ymdhms', scale='utc')
    mjd_day = np.rint(t_day.mjd)
    mjd = mjd_day + (hour * 3600 + minute * 60 + second) / 86400.0

    # Day-of-year from the calendar date alone
    t0 = Time({'year': year, 'month': np.ones_like(month), 'day': np.ones_like(day)}, format='ymdhms', scale='utc')
    doy = np.rint(mjd_day - t0.mjd).astype('int64') + 1

    return np.asarray(mjd, dtype='float64'), doy
