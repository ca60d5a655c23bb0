import logging
import pytest

from myotorque.characteristics import Characteristics
from myotorque.errors import ConfigurationError, UnsupportedVariantError
from myotorque.fatigue import (
  FatigueDynamicStateXia,
  FatigueParameters,
  FatigueState,
  FatigueType,
  make_fatigue_state,
)
from myotorque.state import State


class TestFatigueState:

  def test_defaults_fully_rested(self):
    state = FatigueState()
    assert state.resting_fibers == 1.
    assert state.active_fibers == 0.
    assert state.fatigued_fibers == 0.

  def test_fractions_must_sum_to_one(self):
    with pytest.raises(ConfigurationError):
      FatigueState(0.5, 0.5, 0.5)

  def test_negative_fraction_clamped(self, caplog):
    state = FatigueState()
    with caplog.at_level(logging.WARNING, logger='myotorque.fatigue'):
      state.set_state(-1e-9, 0., 1.)
    assert state.active_fibers == 0.
    assert 'negative' in caplog.text


class TestXia:

  @pytest.fixture
  def characteristics(self):
    params = FatigueParameters(fatigue_rate=0.01, recovery_rate=0.002, develop_factor=10., recovery_factor=10.)
    return Characteristics(fatigue_parameters=params)

  @pytest.mark.parametrize('activation', [0., 0.1, 0.5, 1.])
  def test_compartments_conserve_mass(self, characteristics, activation):
    state = FatigueDynamicStateXia(0.2, 0.1, 0.7)
    derivatives = state.time_derivative_state(State(activation=activation), characteristics)
    assert sum(derivatives) == pytest.approx(0., abs=1e-12)

  def test_recruitment_when_command_above_active(self, characteristics):
    state = FatigueDynamicStateXia(0.2, 0.1, 0.7)
    active_dot, _, resting_dot = state.time_derivative_state(State(activation=0.5), characteristics)
    # c = 10 * (0.5 - 0.2)
    assert active_dot == pytest.approx(3. - 0.01 * 0.2)
    assert resting_dot < 0

  def test_recruitment_limited_by_resting_pool(self, characteristics):
    state = FatigueDynamicStateXia(0.2, 0.75, 0.05)
    active_dot, _, _ = state.time_derivative_state(State(activation=0.9), characteristics)
    assert active_dot == pytest.approx(10. * 0.05 - 0.01 * 0.2)

  def test_relaxation_when_command_below_active(self, characteristics):
    state = FatigueDynamicStateXia(0.6, 0., 0.4)
    active_dot, _, _ = state.time_derivative_state(State(activation=0.1), characteristics)
    assert active_dot < 0


class TestFatigueFactory:

  def test_from_string(self):
    assert isinstance(make_fatigue_state('XIA'), FatigueDynamicStateXia)
    assert FatigueType.from_string('simple') == FatigueType.SIMPLE

  def test_unknown_type(self):
    with pytest.raises(UnsupportedVariantError):
      make_fatigue_state('linear')
