"""Exceptions raised by `myotorque`. Each of them also derives from the closest built-in exception, so that calling
code catching `ValueError`, `LookupError` or `NotImplementedError` keeps working.

Note that a muscle path that does not engage its wrapping object is not an error: the leave points are set to `NaN`
and the `NaN` values propagate to the muscle length, velocity and force of that frame.
"""


class ConfigurationError(ValueError):
  """A physiological or geometrical parameter is unset, out of range, or inconsistent with the model it is used in."""


class NotFoundError(LookupError):
  """A muscle group, muscle or segment was requested by a name or index that does not exist."""


class DimensionMismatchError(ValueError):
  """The size of some input (generalized coordinates, velocities, forces or muscle states) does not match what the
  model expects, or the number of frames differs across inputs."""


class UnsupportedVariantError(NotImplementedError):
  """A muscle type, state type or fatigue type was requested that has no implementation."""
