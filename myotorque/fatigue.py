import copy
import logging
from enum import Enum
from myotorque.errors import ConfigurationError, UnsupportedVariantError


logger = logging.getLogger(__name__)


class FatigueType(Enum):
  SIMPLE = 'simple'
  XIA = 'xia'

  @classmethod
  def from_string(cls, name: str):
    if isinstance(name, cls):
      return name
    try:
      return cls(str(name).casefold())
    except ValueError:
      raise UnsupportedVariantError(f'"{name}" is not a valid fatigue type.') from None


class FatigueParameters:
  """Rates and factors driving the fatigue dynamics of a muscle.

  Args:
    fatigue_rate: `Float`, rate at which active fibers become fatigued.
    recovery_rate: `Float`, rate at which fatigued fibers recover into the resting pool.
    develop_factor: `Float`, gain of the recruitment of resting fibers into the active pool.
    recovery_factor: `Float`, gain of the return of active fibers into the resting pool.
  """

  def __init__(
    self,
    fatigue_rate: float = 0.,
    recovery_rate: float = 0.,
    develop_factor: float = 0.,
    recovery_factor: float = 0.,
  ):
    self.fatigue_rate = float(fatigue_rate)
    self.recovery_rate = float(recovery_rate)
    self.develop_factor = float(develop_factor)
    self.recovery_factor = float(recovery_factor)

  def set_fatigue_rate(self, value: float):
    self.fatigue_rate = float(value)

  def set_recovery_rate(self, value: float):
    self.recovery_rate = float(value)

  def set_develop_factor(self, value: float):
    self.develop_factor = float(value)

  def set_recovery_factor(self, value: float):
    self.recovery_factor = float(value)

  def deep_copy(self):
    return copy.deepcopy(self)

  def get_save_config(self):
    return {
      'fatigue_rate': self.fatigue_rate,
      'recovery_rate': self.recovery_rate,
      'develop_factor': self.develop_factor,
      'recovery_factor': self.recovery_factor,
    }


class FatigueState:
  """Splits the fibers of a muscle into three pools (active, fatigued and resting), each expressed as a fraction of
  the whole muscle. The three fractions must sum to `1`.

  Args:
    active_fibers: `Float`, fraction of active fibers.
    fatigued_fibers: `Float`, fraction of fatigued fibers.
    resting_fibers: `Float`, fraction of resting fibers.

  Raises:
    ConfigurationError: If the fractions do not sum to `1`.
  """

  fatigue_type = FatigueType.SIMPLE
  tolerance = 1e-6

  def __init__(self, active_fibers: float = 0., fatigued_fibers: float = 0., resting_fibers: float = 1.):
    self._active_fibers = 0.
    self._fatigued_fibers = 0.
    self._resting_fibers = 1.
    self.set_state(active_fibers, fatigued_fibers, resting_fibers)

  @property
  def type(self) -> FatigueType:
    return self.fatigue_type

  @property
  def active_fibers(self) -> float:
    return self._active_fibers

  @property
  def fatigued_fibers(self) -> float:
    return self._fatigued_fibers

  @property
  def resting_fibers(self) -> float:
    return self._resting_fibers

  def set_state(self, active: float, fatigued: float, resting: float):
    """Assigns the three fiber fractions. Negative fractions are set to `0` with a warning.

    Raises:
      ConfigurationError: If the fractions do not sum to `1`.
    """
    fractions = {'active': float(active), 'fatigued': float(fatigued), 'resting': float(resting)}
    for key, value in fractions.items():
      if value < 0:
        logger.warning(f'Fraction of {key} fibers is negative ({value}), it was set to 0.')
        fractions[key] = 0.

    total = sum(fractions.values())
    if abs(total - 1.) > self.tolerance:
      raise ConfigurationError(f'Fiber fractions must sum to 1, got {total}.')

    self._active_fibers = fractions['active']
    self._fatigued_fibers = fractions['fatigued']
    self._resting_fibers = fractions['resting']

  def deep_copy(self):
    return copy.deepcopy(self)

  def get_save_config(self):
    return {
      'type': self.type.value,
      'active_fibers': self._active_fibers,
      'fatigued_fibers': self._fatigued_fibers,
      'resting_fibers': self._resting_fibers,
    }


class FatigueDynamicStateXia(FatigueState):
  """Three-compartment fatigue model as described in `[1]`. Resting fibers are recruited into the active pool to
  follow the command (here the muscle activation), active fibers fatigue at a constant rate, and fatigued fibers
  recover into the resting pool at a constant rate.

  References:
    [1] `Xia T, Frey Law LA. A theoretical approach for modeling peripheral muscle fatigue and recovery.
    J Biomech. 2008;41(14):3046-52. doi: 10.1016/j.jbiomech.2008.07.013.`
  """

  fatigue_type = FatigueType.XIA

  def __init__(self, active_fibers: float = 0., fatigued_fibers: float = 0., resting_fibers: float = 1.):
    super().__init__(active_fibers, fatigued_fibers, resting_fibers)
    self._active_fibers_dot = 0.
    self._fatigued_fibers_dot = 0.
    self._resting_fibers_dot = 0.

  @property
  def active_fibers_dot(self) -> float:
    return self._active_fibers_dot

  @property
  def fatigued_fibers_dot(self) -> float:
    return self._fatigued_fibers_dot

  @property
  def resting_fibers_dot(self) -> float:
    return self._resting_fibers_dot

  def time_derivative_state(self, emg, characteristics):
    """Computes the time derivatives of the three fiber fractions.

    Args:
      emg: :class:`myotorque.state.State`, the muscle state whose activation is the target command.
      characteristics: :class:`myotorque.characteristics.Characteristics`, holding the fatigue parameters.

    Returns:
      A `tuple` with the active, fatigued and resting fractions time derivatives, in that order. They sum to `0`.
    """
    params = characteristics.fatigue_parameters
    command = emg.activation
    if self._active_fibers < command:
      if self._resting_fibers > command - self._active_fibers:
        c = params.develop_factor * (command - self._active_fibers)
      else:
        c = params.develop_factor * self._resting_fibers
    else:
      c = params.recovery_factor * (command - self._active_fibers)

    self._active_fibers_dot = c - params.fatigue_rate * self._active_fibers
    self._fatigued_fibers_dot = params.fatigue_rate * self._active_fibers - params.recovery_rate * self._fatigued_fibers
    self._resting_fibers_dot = -c + params.recovery_rate * self._fatigued_fibers
    return self._active_fibers_dot, self._fatigued_fibers_dot, self._resting_fibers_dot


FATIGUE_STATES = {
  FatigueType.SIMPLE: FatigueState,
  FatigueType.XIA: FatigueDynamicStateXia,
}


def make_fatigue_state(fatigue_type: FatigueType | str | None = None, **kwargs) -> FatigueState:
  fatigue_type = FatigueType.SIMPLE if fatigue_type is None else FatigueType.from_string(fatigue_type)
  return FATIGUE_STATES[fatigue_type](**kwargs)


def fatigue_state_from_config(cfg: dict) -> FatigueState:
  cfg = dict(cfg)
  return make_fatigue_state(cfg.pop('type', None), **cfg)
