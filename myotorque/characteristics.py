import copy
from myotorque.errors import ConfigurationError
from myotorque.fatigue import FatigueParameters
from myotorque.state import State


class Characteristics:
  """Physiological characteristics of a single muscle.

  Args:
    optimal_length: `Float`, optimal length of the contractile element, in `m`.
    force_iso_max: `Float`, maximal isometric force, in `N`.
    pcsa: `Float`, physiological cross-sectional area.
    tendon_slack_length: `Float`, tendon slack length, in `m`.
    pennation_angle: `Float`, pennation angle at optimal length, in `rad`.
    state_max: :class:`myotorque.state.State`, the maximal excitation and activation of the muscle. Defaults to a
      state with an excitation and an activation of `1`.
    min_activation: `Float`, minimal activation of the muscle.
    torque_activation: `Float`, activation time constant, in `sec`.
    torque_deactivation: `Float`, deactivation time constant, in `sec`.
    fatigue_parameters: :class:`myotorque.fatigue.FatigueParameters`, fatigue rates. Defaults to all-zero rates.

  Raises:
    ConfigurationError: If a length, force, area or time constant is negative, or if the maximal excitation or
      activation is not positive.
  """

  _non_negative = (
    'optimal_length', 'force_iso_max', 'pcsa', 'tendon_slack_length', 'min_activation', 'torque_activation',
    'torque_deactivation',
  )

  def __init__(
    self,
    optimal_length: float = 0.,
    force_iso_max: float = 0.,
    pcsa: float = 1.,
    tendon_slack_length: float = 0.,
    pennation_angle: float = 0.,
    state_max: State | None = None,
    min_activation: float = .01,
    torque_activation: float = .01,
    torque_deactivation: float = .04,
    fatigue_parameters: FatigueParameters | None = None,
  ):
    self.optimal_length = self._check('optimal_length', optimal_length)
    self.force_iso_max = self._check('force_iso_max', force_iso_max)
    self.pcsa = self._check('pcsa', pcsa)
    self.tendon_slack_length = self._check('tendon_slack_length', tendon_slack_length)
    self.pennation_angle = float(pennation_angle)
    self.state_max = self._check_state_max(State(1., 1.) if state_max is None else state_max)
    self.min_activation = self._check('min_activation', min_activation)
    self.torque_activation = self._check('torque_activation', torque_activation)
    self.torque_deactivation = self._check('torque_deactivation', torque_deactivation)
    self.fatigue_parameters = FatigueParameters() if fatigue_parameters is None else fatigue_parameters

  def _check(self, name, value):
    value = float(value)
    if name in self._non_negative and value < 0:
      raise ConfigurationError(f'"{name}" cannot be negative, got {value}.')
    return value

  @staticmethod
  def _check_state_max(state: State):
    if state.excitation <= 0 or state.activation <= 0:
      raise ConfigurationError(f'The maximal excitation and activation must be positive, got {state.excitation} and '
                               f'{state.activation}.')
    return state

  def set_optimal_length(self, value: float):
    self.optimal_length = self._check('optimal_length', value)

  def set_force_iso_max(self, value: float):
    self.force_iso_max = self._check('force_iso_max', value)

  def set_pcsa(self, value: float):
    self.pcsa = self._check('pcsa', value)

  def set_tendon_slack_length(self, value: float):
    self.tendon_slack_length = self._check('tendon_slack_length', value)

  def set_pennation_angle(self, value: float):
    self.pennation_angle = float(value)

  def set_state_max(self, state: State):
    self.state_max = self._check_state_max(state)

  def set_min_activation(self, value: float):
    self.min_activation = self._check('min_activation', value)

  def set_torque_activation(self, value: float):
    self.torque_activation = self._check('torque_activation', value)

  def set_torque_deactivation(self, value: float):
    self.torque_deactivation = self._check('torque_deactivation', value)

  def set_fatigue_parameters(self, fatigue_parameters: FatigueParameters):
    self.fatigue_parameters = fatigue_parameters

  def deep_copy(self):
    return copy.deepcopy(self)

  def get_save_config(self):
    return {
      'optimal_length': self.optimal_length,
      'force_iso_max': self.force_iso_max,
      'pcsa': self.pcsa,
      'tendon_slack_length': self.tendon_slack_length,
      'pennation_angle': self.pennation_angle,
      'state_max': {'excitation': self.state_max.excitation, 'activation': self.state_max.activation},
      'min_activation': self.min_activation,
      'torque_activation': self.torque_activation,
      'torque_deactivation': self.torque_deactivation,
      'fatigue_parameters': self.fatigue_parameters.get_save_config(),
    }

  @classmethod
  def from_config(cls, cfg: dict):
    """Builds characteristics from a dictionary as returned by :meth:`get_save_config`.

    Raises:
      ConfigurationError: If the dictionary holds an unexpected key.
    """
    cfg = dict(cfg)
    state_max = cfg.pop('state_max', None)
    fatigue = cfg.pop('fatigue_parameters', None)
    try:
      return cls(
        state_max=None if state_max is None else State(**state_max),
        fatigue_parameters=None if fatigue is None else FatigueParameters(**fatigue),
        **cfg,
      )
    except TypeError as e:
      raise ConfigurationError(f'Invalid muscle characteristics configuration: {e}') from e
