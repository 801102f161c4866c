"""delay: Compose the final delay observable from raw delay and corrections.

All three input formats go through assemble_delay, so corrections are always
applied in the same order: cable calibration first, then ionosphere.
"""

import numpy as np

NS = 1e-9


def delay_sigma(sigma_delay, sgdion):
    """Delay sigma including ionosphere sigma, added in quadrature.

    Args:
        sigma_delay (float or np.ndarray): Raw delay sigma (s)
        sgdion (float or np.ndarray): Ionosphere delay sigma (ns)

    Returns:
        sigma (float or np.ndarray): sqrt(sigma_delay**2 + (sgdion * 1e-9)**2) (s)
    """
    return np.sqrt(np.asarray(sigma_delay, dtype='float64') ** 2 + (np.asarray(sgdion, dtype='float64') * NS) ** 2)


def assemble_delay(
    delay,
    sigma_delay,
    delion=0.0,
    sgdion=0.0,
    cab1=0.0,
    cab2=0.0,
    cable_calibration: bool = True,
    ionosphere: bool = True,
) -> tuple:
    """Apply cable calibration and ionosphere correction to raw group delays.

    Args:
        delay (float or np.ndarray): Raw group delay (s)
        sigma_delay (float or np.ndarray): Raw group delay sigma (s)
        delion (float or np.ndarray): Ionospheric delay (ns), subtracted from delay
        sgdion (float or np.ndarray): Ionospheric delay sigma (ns)
        cab1 (float or np.ndarray): Cable calibration of station 1 (ns)
        cab2 (float or np.ndarray): Cable calibration of station 2 (ns)
        cable_calibration (bool): Apply cable calibration (default True)
        ionosphere (bool): Subtract ionosphere delay (default True)

    Returns:
        (delay, sigma): Corrected delay (s) and sigma (s), same shape as input

    Notes:
        delay = delay + (cab2 - cab1) * 1e-9
        delay = delay - delion * 1e-9
        sigma = sqrt(sigma_delay**2 + (sgdion * 1e-9)**2)
    """
    tau = np.asarray(delay, dtype='float64')
    if cable_calibration:
        corcab = np.asarray(cab2, dtype='float64') - np.asarray(cab1, dtype='float64')
        tau = tau + corcab * NS
    if ionosphere:
        tau = tau - np.asarray(delion, dtype='float64') * NS

    sigma = delay_sigma(sigma_delay, sgdion)

    if tau.ndim == 0:
        return float(tau), float(sigma)
    return tau, sigma
