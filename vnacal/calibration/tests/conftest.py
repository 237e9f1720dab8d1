import numpy as npy
import pytest

from vnacal.calibration import Calibration, Layout, convert_ue14_to_e12
from vnacal.calibration.equations import error_model
from vnacal.calibration.layout import CalType
from vnacal.mathFunctions import rand_c


def random_calibration(cal_type, m_rows, m_columns, frequency_vector, rng):
    '''
    Calibration with random error terms close to a perfect VNA.
    '''
    layout = Layout(cal_type, m_rows, m_columns)
    solve = layout.solve_layout()
    model = error_model(solve)
    terms = 0.2 * rand_c(len(frequency_vector), solve.error_terms, rng=rng)
    for system in range(solve.systems):
        start = solve.system_offset(system)
        stop = start + solve.t_terms
        terms[:, start:stop] += model.initial_terms(system)
        unity = terms[:, solve.unity_offset(system)].copy()
        terms[:, start:stop] /= unity[:, npy.newaxis]
    if layout.cal_type is CalType.E12:
        solve, terms = convert_ue14_to_e12(solve, terms)
    return Calibration(solve, frequency_vector, terms)


@pytest.fixture()
def rng() -> npy.random.Generator:
    return npy.random.default_rng(20240611)

@pytest.fixture()
def make_calibration():
    return random_calibration
