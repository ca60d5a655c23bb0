import copy
import logging
import numpy as np
from enum import Enum
from myotorque.errors import ConfigurationError, UnsupportedVariantError


logger = logging.getLogger(__name__)


class StateType(Enum):
  """Tags for the available muscle state variants."""

  SIMPLE = 'simple'
  DYNAMIC = 'dynamic'
  BUCHANAN = 'buchanan'

  @classmethod
  def from_string(cls, name: str):
    """Case-insensitive lookup of a state type from its name.

    Raises:
      UnsupportedVariantError: If no state type goes by that name.
    """
    if isinstance(name, cls):
      return name
    try:
      return cls(str(name).casefold())
    except ValueError:
      raise UnsupportedVariantError(f'"{name}" is not a valid muscle state type.') from None


class State:
  """Holds the excitation and activation values of a single muscle. This is the structure used to pass EMG-like data
  to a muscle, and the structure used to define the maximal excitation of a muscle in its
  :class:`myotorque.characteristics.Characteristics`.

  Args:
    excitation: `Float`, the muscle excitation (neural drive). Negative values are clipped to `0`.
    activation: `Float`, the muscle activation. Values are clipped to the `[0, 1]` range.
  """

  state_type = StateType.SIMPLE

  def __init__(self, excitation: float = 0., activation: float = 0.):
    self._excitation = max(float(excitation), 0.)
    self._activation = float(np.clip(activation, 0., 1.))
    self._excitation_norm = 0.

  @property
  def type(self) -> StateType:
    return self.state_type

  @property
  def excitation(self) -> float:
    return self._excitation

  @property
  def activation(self) -> float:
    return self._activation

  @property
  def excitation_norm(self) -> float:
    """The normalized excitation as last computed by :meth:`normalize_excitation` or set by
    :meth:`set_excitation_norm`."""
    return self._excitation_norm

  def set_excitation(self, value: float):
    """Sets the muscle excitation. Negative values are clipped to `0`.

    Args:
      value: `Float`, the new excitation value.
    """
    self._excitation = max(float(value), 0.)

  def set_activation(self, value: float):
    """Sets the muscle activation. The value is clipped to the `[0, 1]` range.

    Args:
      value: `Float`, the new activation value.
    """
    self._activation = float(np.clip(value, 0., 1.))

  def normalize_excitation(self, emg_max) -> float:
    """Computes, stores and returns the excitation normalized by a maximal excitation.

    Args:
      emg_max: :class:`State`, the state holding the maximal excitation, usually
        :attr:`myotorque.characteristics.Characteristics.state_max`.

    Returns:
      The normalized excitation.

    Raises:
      ConfigurationError: If the maximal excitation is not positive.
    """
    if emg_max.excitation <= 0:
      raise ConfigurationError(f'The maximal excitation must be positive, got {emg_max.excitation}.')
    if self._excitation > emg_max.excitation:
      logger.warning(f'Excitation ({self._excitation}) is higher than maximal excitation ({emg_max.excitation}).')
    self._excitation_norm = self._excitation / emg_max.excitation
    return self._excitation_norm

  def set_excitation_norm(self, value: float):
    self._excitation_norm = float(value)

  def deep_copy(self):
    return copy.deepcopy(self)

  def get_save_config(self):
    return {'type': self.type.value, 'excitation': self._excitation, 'activation': self._activation}

  def __repr__(self):
    return f'{self.__class__.__name__}(excitation={self._excitation}, activation={self._activation})'


class StateDynamics(State):
  """A :class:`State` that keeps track of its previous excitation and activation values and that can compute the
  time derivative of its activation.

  The activation dynamics follow the first-order ordinary differential equation described in equations 1-2 in `[1]`,
  with activation and deactivation time constants scaled by the current activation level as in `[2]`. Note that this
  is the same activation equation as used by :meth:`myotorque.muscle.Muscle.activation_dot`.

  References:
    [1] `Thelen DG. Adjustment of muscle mechanics model parameters to simulate dynamic contractions in older
    adults. J Biomech Eng. 2003 Feb;125(1):70-7. doi: 10.1115/1.1531112. PMID: 12661198.`
    [2] `De Groote F, Kinney AL, Rao AV, Fregly BJ. Evaluation of direct collocation optimal control problem
    formulations for solving the muscle redundancy problem. Ann Biomed Eng. 2016. doi: 10.1007/s10439-016-1591-9.`

  Args:
    excitation: `Float`, the initial muscle excitation.
    activation: `Float`, the initial muscle activation.
  """

  state_type = StateType.DYNAMIC

  def __init__(self, excitation: float = 0., activation: float = 0.):
    super().__init__(excitation=excitation, activation=activation)
    self._previous_excitation = 0.
    self._previous_activation = 0.
    self._activation_dot = 0.

  @property
  def previous_excitation(self) -> float:
    return self._previous_excitation

  @property
  def previous_activation(self) -> float:
    return self._previous_activation

  def set_excitation(self, value: float):
    self._previous_excitation = self._excitation
    super().set_excitation(value)

  def set_activation(self, value: float):
    self._previous_activation = self._activation
    super().set_activation(value)

  def time_derivative_activation(
    self,
    characteristics=None,
    already_normalized: bool = False,
    excitation: float | None = None,
    activation: float | None = None,
  ) -> float:
    """Computes the time derivative of the activation.

    If `characteristics` is `None`, nothing is computed and the previously computed derivative is returned. If
    `excitation` and/or `activation` are provided, they are first assigned to this state, and the derivative is then
    computed from the stored values.

    Args:
      characteristics: :class:`myotorque.characteristics.Characteristics`, the muscle characteristics providing the
        time constants and the maximal excitation.
      already_normalized: `Boolean`, whether the excitation is already normalized by the maximal excitation.
      excitation: `Float`, optional excitation to assign before computing the derivative.
      activation: `Float`, optional activation to assign before computing the derivative.

    Returns:
      The activation time derivative.
    """
    if characteristics is None:
      return self._activation_dot
    if excitation is not None:
      self.set_excitation(excitation)
    if activation is not None:
      self.set_activation(activation)
    self._activation_dot = self._activation_ode(characteristics, already_normalized)
    return self._activation_dot

  def time_derivative_activation_from_state(self, state: State, characteristics, already_normalized: bool = False):
    """Same as :meth:`time_derivative_activation`, taking the excitation and activation from another state."""
    return self.time_derivative_activation(
      characteristics,
      already_normalized=already_normalized,
      excitation=state.excitation,
      activation=state.activation,
    )

  def _activation_ode(self, characteristics, already_normalized):
    if already_normalized:
      excitation = self._excitation
    else:
      excitation = self._excitation / characteristics.state_max.excitation
    # both ends of the ODE are floored at the minimal activation
    excitation = min(max(excitation, characteristics.min_activation), 1.)
    activation = min(max(self._activation, characteristics.min_activation), 1.)
    num = excitation - activation
    tmp = 0.5 + 1.5 * activation
    if num > 0:
      tau = characteristics.torque_activation * tmp
    else:
      tau = characteristics.torque_deactivation / tmp
    return num / tau


class StateDynamicsBuchanan(StateDynamics):
  """A :class:`StateDynamics` where the excitation is itself driven by a neural command through first-order
  dynamics, and where the activation is a nonlinear function of the excitation, as described in `[1]`:

  .. math::
    activation = (e^{A * excitation} - 1) / (e^{A} - 1)

  with :math:`A` the (non-zero) shape factor.

  References:
    [1] `Buchanan TS, Lloyd DG, Manal K, Besier TF. Neuromusculoskeletal modeling: estimation of muscle forces and
    joint moments and movements from measurements of neural command. J Appl Biomech. 2004;20(4):367-95.`

  Args:
    neural_command: `Float`, the initial neural command.
    excitation: `Float`, the initial excitation. The matching activation is derived from it.
    shape_factor: `Float`, the non-zero shape factor of the excitation-to-activation relationship.
  """

  state_type = StateType.BUCHANAN

  def __init__(self, neural_command: float = 0., excitation: float = 0., shape_factor: float = -3.):
    super().__init__(excitation=excitation, activation=0.)
    self._neural_command = float(neural_command)
    self._excitation_dot = 0.
    self.set_shape_factor(shape_factor)
    self.set_excitation(excitation)

  @property
  def neural_command(self) -> float:
    return self._neural_command

  @property
  def shape_factor(self) -> float:
    return self._shape_factor

  def set_neural_command(self, value: float):
    self._neural_command = float(value)

  def set_shape_factor(self, value: float):
    if value == 0:
      raise ConfigurationError('The shape factor of a Buchanan state cannot be 0.')
    self._shape_factor = float(value)

  def set_excitation(self, value: float):
    super().set_excitation(value)
    activation = (np.exp(self._shape_factor * self._excitation) - 1) / (np.exp(self._shape_factor) - 1)
    super().set_activation(activation)

  def time_derivative_excitation(self, characteristics=None, already_normalized: bool = False) -> float:
    """Computes the time derivative of the excitation, driven by the neural command. This follows the same
    first-order dynamics as the activation of a :class:`StateDynamics`.

    Args:
      characteristics: :class:`myotorque.characteristics.Characteristics`, the muscle characteristics. If `None`,
        the previously computed derivative is returned.
      already_normalized: `Boolean`, whether the neural command is already normalized by the maximal excitation.

    Returns:
      The excitation time derivative.
    """
    if characteristics is None:
      return self._excitation_dot
    command = self._neural_command if already_normalized else \
      self._neural_command / characteristics.state_max.excitation
    num = command - self._excitation
    tmp = 0.5 + 1.5 * self._excitation
    if num > 0:
      tau = characteristics.torque_activation * tmp
    else:
      tau = characteristics.torque_deactivation / tmp
    self._excitation_dot = num / tau
    return self._excitation_dot

  def get_save_config(self):
    cfg = super().get_save_config()
    cfg.update({'neural_command': self._neural_command, 'shape_factor': self._shape_factor})
    return cfg


STATES = {
  StateType.SIMPLE: State,
  StateType.DYNAMIC: StateDynamics,
  StateType.BUCHANAN: StateDynamicsBuchanan,
}


def make_state(state_type: StateType | str | None = None, **kwargs) -> State:
  """Builds a state of the requested type.

  Args:
    state_type: :class:`StateType` or `String`, the state type. `None` defaults to a :class:`StateDynamics`.
    **kwargs: Passed as-is to the state constructor.

  Raises:
    UnsupportedVariantError: If the state type has no implementation.
  """
  state_type = StateType.DYNAMIC if state_type is None else StateType.from_string(state_type)
  if state_type not in STATES:
    raise UnsupportedVariantError(f'"{state_type.value}" states are not implemented.')
  return STATES[state_type](**kwargs)


def state_from_config(cfg: dict) -> State:
  cfg = dict(cfg)
  state_type = StateType.from_string(cfg.pop('type', StateType.DYNAMIC))
  if state_type == StateType.BUCHANAN:
    cfg.pop('activation', None)
  return make_state(state_type, **cfg)
