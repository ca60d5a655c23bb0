"""Entry points evaluating a :class:`myotorque.muscles.Muscles` set over several frames at once. Inputs are
`n_frames x n` arrays (one frame per row), outputs are `n x n_frames` `numpy.ndarray` objects (one frame per
column). Every dimension is checked before the first frame is processed, and frames are processed in order.

A frame where a muscle does not engage its wrapping object yields `NaN` values for that muscle and frame only.
"""

import logging
import numpy as np
from myotorque.errors import DimensionMismatchError
from myotorque.state import State


logger = logging.getLogger(__name__)


def _as_frames(x, n_columns: int, name: str) -> np.ndarray:
  x = np.asarray(x, dtype=np.float64)
  if x.ndim == 1:
    x = x.reshape(1, -1)
  if x.ndim != 2 or x.shape[1] != n_columns:
    raise DimensionMismatchError(f'{name} should be a n_frames x {n_columns} array, got shape {x.shape}.')
  return x


def _check_kinematics(muscles, n_frames: int, q, qdot):
  """Returns the per-frame generalized coordinates and velocities, or `None` for both if none are provided."""
  if q is None and qdot is None:
    if n_frames != 1:
      raise DimensionMismatchError(f'Without generalized coordinates, only one frame can be processed, got '
                                   f'{n_frames}.')
    return None, None
  if q is None or qdot is None:
    raise DimensionMismatchError('Generalized coordinates and velocities must be provided together.')

  nb_q = muscles.skeleton.nb_q
  q = _as_frames(q, nb_q, 'Q')
  qdot = _as_frames(qdot, nb_q, 'Qdot')
  if q.shape[0] != n_frames or qdot.shape[0] != n_frames:
    raise DimensionMismatchError(f'Q ({q.shape[0]} frames) and Qdot ({qdot.shape[0]} frames) must have as many '
                                 f'frames as the activations ({n_frames} frames).')
  return q, qdot


def _frame_states(activations_frame):
  return [State(excitation=0., activation=a) for a in activations_frame]


def muscle_joint_torque_from_activation(muscles, activations, q=None, qdot=None, return_forces: bool = False):
  """Computes the generalized forces produced by the muscles for each frame of activations.

  Args:
    muscles: :class:`myotorque.muscles.Muscles`, the muscles to evaluate.
    activations: `numpy.ndarray`, `Tensor` or `list`, a `n_frames x n_muscles` array of activations.
    q: `numpy.ndarray`, `Tensor` or `list`, a `n_frames x nb_q` array of generalized coordinates. If `None`, the
      muscle paths are not recomputed and only one frame is allowed.
    qdot: `numpy.ndarray`, `Tensor` or `list`, a `n_frames x nb_q` array of generalized velocities. It must be
      provided if and only if `q` is.
    return_forces: `Boolean`, whether to also return the muscle forces.

  Returns:
    A `(nb_q - nb_root) x n_frames` array of generalized forces, where the root coordinates are left out. If
    `return_forces` is `True`, a `n_muscles x n_frames` array of force norms is returned as well.

  Raises:
    DimensionMismatchError: If any input does not have the expected size or number of frames.
  """
  activations = _as_frames(activations, muscles.nb_muscle_total, 'Activations')
  n_frames = activations.shape[0]
  q, qdot = _check_kinematics(muscles, n_frames, q, qdot)
  nb_root = muscles.skeleton.nb_root

  torques = np.zeros((muscles.skeleton.nb_q - nb_root, n_frames))
  forces = np.zeros((muscles.nb_muscle_total, n_frames))
  for i in range(n_frames):
    if q is None:
      torque, force = muscles.muscular_joint_torque_from_states(
        _frame_states(activations[i]), update_kin=False, return_forces=True
      )
    else:
      torque, force = muscles.muscular_joint_torque_from_states(
        _frame_states(activations[i]), update_kin=True, q=q[i], qdot=qdot[i], return_forces=True
      )
    torques[:, i] = torque.detach().cpu().numpy()[nb_root:]
    forces[:, i] = force.detach().cpu().numpy()

  logger.debug(f'Computed muscle joint torques over {n_frames} frame(s).')
  return (torques, forces) if return_forces else torques


def muscle_forces_from_activation(muscles, activations, q=None, qdot=None) -> np.ndarray:
  """Computes the force norm of each muscle for each frame of activations. Arguments are the same as for
  :func:`muscle_joint_torque_from_activation`.

  Returns:
    A `n_muscles x n_frames` array.
  """
  _, forces = muscle_joint_torque_from_activation(muscles, activations, q, qdot, return_forces=True)
  return forces


def muscles_length_from_q(muscles, q) -> np.ndarray:
  """Computes the length of each muscle for each frame of generalized coordinates.

  Args:
    muscles: :class:`myotorque.muscles.Muscles`, the muscles to evaluate.
    q: `numpy.ndarray`, `Tensor` or `list`, a `n_frames x nb_q` array of generalized coordinates.

  Returns:
    A `n_muscles x n_frames` array.
  """
  q = _as_frames(q, muscles.skeleton.nb_q, 'Q')
  lengths = np.zeros((muscles.nb_muscle_total, q.shape[0]))
  for i in range(q.shape[0]):
    muscles.update_muscles(q[i], update_kin=True)
    for j, muscle in enumerate(muscles.muscles()):
      lengths[j, i] = muscle.geometry.length().item()
  return lengths
