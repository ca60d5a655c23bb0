import logging
import math
import pytest

from myotorque.characteristics import Characteristics
from myotorque.errors import ConfigurationError, UnsupportedVariantError
from myotorque.state import (
  State,
  StateDynamics,
  StateDynamicsBuchanan,
  StateType,
  make_state,
  state_from_config,
)


class TestStateClamp:
  """Excitation and activation stay in their valid range whatever is assigned."""

  def test_activation_above_one(self):
    state = State()
    state.set_activation(1.5)
    assert state.activation == 1.

  def test_activation_below_zero(self):
    state = State(activation=0.5)
    state.set_activation(-0.2)
    assert state.activation == 0.

  def test_activation_from_zero_accepts_valid_value(self):
    state = State()
    state.set_activation(0.3)
    assert state.activation == pytest.approx(0.3)

  def test_negative_excitation(self):
    state = State(excitation=0.4)
    state.set_excitation(-1.)
    assert state.excitation == 0.

  def test_constructor_clamps(self):
    state = State(excitation=-2., activation=3.)
    assert state.excitation == 0.
    assert state.activation == 1.


class TestNormalizeExcitation:

  def test_normalized_value_is_cached(self):
    state = State(excitation=0.5)
    assert state.normalize_excitation(State(excitation=2.)) == pytest.approx(0.25)
    assert state.excitation_norm == pytest.approx(0.25)

  def test_warns_above_max(self, caplog):
    state = State(excitation=3.)
    with caplog.at_level(logging.WARNING, logger='myotorque.state'):
      state.normalize_excitation(State(excitation=1.))
    assert 'higher than maximal excitation' in caplog.text

  def test_zero_max_excitation(self):
    with pytest.raises(ConfigurationError):
      State(excitation=0.5).normalize_excitation(State(excitation=0.))


class TestStateDynamics:

  @pytest.fixture
  def characteristics(self):
    return Characteristics(min_activation=0., torque_activation=0.01, torque_deactivation=0.04)

  def test_previous_values_captured(self):
    state = StateDynamics(excitation=0.2, activation=0.3)
    state.set_excitation(0.6)
    state.set_activation(0.7)
    assert state.previous_excitation == pytest.approx(0.2)
    assert state.previous_activation == pytest.approx(0.3)

  def test_activation_rises_with_activation_time_constant(self, characteristics):
    state = StateDynamics(excitation=1., activation=0.)
    # tau = 0.01 * (0.5 + 1.5 * 0)
    assert state.time_derivative_activation(characteristics) == pytest.approx(1. / 0.005)

  def test_activation_decays_with_deactivation_time_constant(self, characteristics):
    state = StateDynamics(excitation=0., activation=1.)
    # tau = 0.04 / (0.5 + 1.5 * 1)
    assert state.time_derivative_activation(characteristics) == pytest.approx(-1. / 0.02)

  def test_cached_derivative(self, characteristics):
    state = StateDynamics(excitation=1., activation=0.)
    value = state.time_derivative_activation(characteristics)
    state.set_activation(0.9)
    assert state.time_derivative_activation() == value

  def test_derivative_from_given_values(self, characteristics):
    state = StateDynamics()
    value = state.time_derivative_activation(characteristics, excitation=1., activation=0.)
    assert value == pytest.approx(200.)
    assert state.excitation == 1.

  def test_derivative_from_state(self, characteristics):
    state = StateDynamics()
    value = state.time_derivative_activation_from_state(State(0., 1.), characteristics)
    assert value == pytest.approx(-50.)

  def test_normalization_by_max_excitation(self, characteristics):
    characteristics.set_state_max(State(excitation=2., activation=1.))
    state = StateDynamics(excitation=1., activation=0.5)
    assert state.time_derivative_activation(characteristics) == pytest.approx(0.)
    assert state.time_derivative_activation(characteristics, already_normalized=True) > 0

  def test_zero_at_equilibrium(self, characteristics):
    state = StateDynamics(excitation=0.4, activation=0.4)
    assert state.time_derivative_activation(characteristics) == pytest.approx(0.)

  def test_minimal_activation_floor(self, characteristics):
    characteristics.set_min_activation(0.2)
    state = StateDynamics(excitation=1., activation=0.)
    # activation is read as 0.2, tau = 0.01 * (0.5 + 1.5 * 0.2)
    assert state.time_derivative_activation(characteristics) == pytest.approx(0.8 / 0.008)

  def test_no_deactivation_below_minimal_activation(self, characteristics):
    characteristics.set_min_activation(0.2)
    state = StateDynamics(excitation=0., activation=0.1)
    assert state.time_derivative_activation(characteristics) == pytest.approx(0.)


class TestBuchanan:

  def test_map_endpoints(self):
    state = StateDynamicsBuchanan(excitation=0.)
    assert state.activation == pytest.approx(0.)
    state.set_excitation(1.)
    assert state.activation == pytest.approx(1.)

  def test_map_midpoint(self):
    state = StateDynamicsBuchanan(excitation=0.5, shape_factor=-3.)
    expected = (math.exp(-1.5) - 1) / (math.exp(-3.) - 1)
    assert state.activation == pytest.approx(expected)

  def test_zero_shape_factor(self):
    with pytest.raises(ConfigurationError):
      StateDynamicsBuchanan(shape_factor=0.)

  def test_excitation_follows_neural_command(self):
    state = StateDynamicsBuchanan(neural_command=1., excitation=0.)
    assert state.time_derivative_excitation(Characteristics()) > 0

  def test_type(self):
    assert StateDynamicsBuchanan().type == StateType.BUCHANAN


class TestStateFactory:

  def test_from_string(self):
    assert StateType.from_string('Buchanan') == StateType.BUCHANAN

  def test_unknown_type(self):
    with pytest.raises(UnsupportedVariantError):
      make_state('unknown')

  def test_default_is_dynamic(self):
    assert isinstance(make_state(), StateDynamics)

  def test_config_round_trip(self):
    state = StateDynamicsBuchanan(neural_command=0.3, excitation=0.4, shape_factor=-2.)
    rebuilt = state_from_config(state.get_save_config())
    assert rebuilt.get_save_config() == state.get_save_config()

  def test_deep_copy_is_independent(self):
    state = StateDynamics(excitation=0.2, activation=0.2)
    copied = state.deep_copy()
    copied.set_activation(0.9)
    assert state.activation == pytest.approx(0.2)
