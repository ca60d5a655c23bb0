import torch as th
from abc import abstractmethod
from collections.abc import Sequence
from myotorque.errors import DimensionMismatchError, NotFoundError
from myotorque.utils import DTYPE, DEVICE, to_tensor, translation, rotation_z, apply_rt


class Skeleton(th.nn.Module):
  """Base class for `Skeleton` objects. A skeleton provides the kinematics that muscles are attached to: the global
  transform of each segment and the jacobian of any point fixed on a segment, for the current generalized
  coordinates. It never integrates any dynamics.

  Args:
    nb_q: `Integer`, number of generalized coordinates.
    segment_names: `List` of `String`, the name of each segment, in index order.
    nb_root: `Integer`, how many of the generalized coordinates belong to the root segment. These come first in
      the generalized coordinates vector.
    name: `String`, the name of the object instance.
  """

  def __init__(self, nb_q: int, segment_names: Sequence[str], nb_root: int = 0, name: str = 'skeleton'):
    super().__init__()
    self.__name__ = name
    self.nb_q = nb_q
    self.nb_root = nb_root
    self.segment_names = list(segment_names)
    self.q = th.zeros(nb_q, dtype=DTYPE, device=DEVICE)
    self.qdot = th.zeros(nb_q, dtype=DTYPE, device=DEVICE)
    self._transforms = None

  @property
  def nb_segments(self) -> int:
    return len(self.segment_names)

  @property
  def nb_generalized_torque(self) -> int:
    return self.nb_q

  def segment_index(self, name: str) -> int:
    """Returns the index of a segment, or `-1` if no segment goes by that name."""
    try:
      return self.segment_names.index(name)
    except ValueError:
      return -1

  def _resolve(self, segment: str | int) -> int:
    idx = self.segment_index(segment) if isinstance(segment, str) else int(segment)
    if idx < 0 or idx >= self.nb_segments:
      raise NotFoundError(f'Segment "{segment}" does not exist in skeleton "{self.__name__}".')
    return idx

  def update_kinematics(self, q, qdot=None):
    """Updates the skeleton's kinematics for the given generalized coordinates and, optionally, velocities.

    Args:
      q: `Tensor`, `numpy.ndarray` or `list`, the generalized coordinates, of size :attr:`nb_q`.
      qdot: `Tensor`, `numpy.ndarray` or `list`, the generalized velocities, of size :attr:`nb_q`.

    Raises:
      DimensionMismatchError: If `q` or `qdot` is not of size :attr:`nb_q`.
    """
    q = to_tensor(q).reshape(-1)
    if q.numel() != self.nb_q:
      raise DimensionMismatchError(f'Expected {self.nb_q} generalized coordinates, got {q.numel()}.')
    if qdot is not None:
      qdot = to_tensor(qdot).reshape(-1)
      if qdot.numel() != self.nb_q:
        raise DimensionMismatchError(f'Expected {self.nb_q} generalized velocities, got {qdot.numel()}.')
      self.qdot = qdot
    self.q = q
    self._transforms = self._update_kinematics(q)

  def global_joint_transform(self, segment: str | int) -> th.Tensor:
    """Returns the `4 x 4` homogeneous transform of a segment in the global frame, for the last kinematics update.

    Raises:
      NotFoundError: If the segment does not exist.
    """
    idx = self._resolve(segment)
    if self._transforms is None:
      self.update_kinematics(self.q)
    return self._transforms[idx]

  def point_in_global(self, point, segment: str | int) -> th.Tensor:
    """Expresses a point given in a segment's local frame in the global frame."""
    return apply_rt(self.global_joint_transform(segment), to_tensor(point))

  def point_jacobian(self, point, segment: str | int) -> th.Tensor:
    """Jacobian of a point fixed on a segment with respect to the generalized coordinates.

    Args:
      point: `Tensor`, the point in the segment's local frame.
      segment: `String` or `Integer`, the segment name or index.

    Returns:
      A `3 x nb_q` tensor.
    """
    idx = self._resolve(segment)
    return self._point_jacobian(self.point_in_global(point, idx), idx)

  @abstractmethod
  def _update_kinematics(self, q: th.Tensor) -> list[th.Tensor]:
    return

  @abstractmethod
  def _point_jacobian(self, global_point: th.Tensor, segment_idx: int) -> th.Tensor:
    return

  def get_save_config(self):
    return {'name': self.__name__, 'nb_q': self.nb_q, 'nb_root': self.nb_root, 'segment_names': self.segment_names}


class PlanarChain(Skeleton):
  """A serial chain of segments articulated by revolute joints that all rotate about the global `z` axis.

  The chain hangs from a `base` segment (index `0`). Each following segment's joint sits at the tip of the previous
  segment, along that segment's local `x` axis. If `root_translation` is `True`, the base can translate in the `xy`
  plane, which adds two root generalized coordinates placed before the joint angles.

  Args:
    lengths: `List` of `Float`, the length (m) of each articulated segment.
    names: `List` of `String`, the name of each articulated segment. Defaults to `segment_1`, `segment_2`, etc.
    root_translation: `Boolean`, whether the base translates in the `xy` plane.
    name: `String`, the name of the object instance.
  """

  def __init__(
    self,
    lengths: Sequence[float],
    names: Sequence[str] | None = None,
    root_translation: bool = False,
    name: str = 'planar_chain',
  ):
    names = [f'segment_{i + 1}' for i in range(len(lengths))] if names is None else list(names)
    if len(names) != len(lengths):
      raise DimensionMismatchError(f'Got {len(names)} segment names for {len(lengths)} segment lengths.')
    nb_root = 2 if root_translation else 0
    super().__init__(nb_q=nb_root + len(lengths), segment_names=['base'] + names, nb_root=nb_root, name=name)
    self.lengths = [float(length) for length in lengths]
    self.root_translation = root_translation

  def _update_kinematics(self, q):
    base = translation(q[0], q[1]) if self.root_translation else th.eye(4, dtype=DTYPE)
    transforms = [base]
    for k in range(len(self.lengths)):
      offset = 0. if k == 0 else self.lengths[k - 1]
      angle = q[self.nb_root + k]
      transforms.append(transforms[-1] @ translation(offset, 0.) @ rotation_z(angle))
    return transforms

  def _point_jacobian(self, global_point, segment_idx):
    jacobian = th.zeros((3, self.nb_q), dtype=DTYPE)
    if self.root_translation:
      jacobian[0, 0] = 1.
      jacobian[1, 1] = 1.
    # segment k (k >= 1) is moved by joints 1 to k
    for k in range(1, segment_idx + 1):
      lever = global_point - self._transforms[k][:3, 3]
      col = self.nb_root + k - 1
      jacobian[0, col] = -lever[1]
      jacobian[1, col] = lever[0]
    return jacobian

  def get_save_config(self):
    cfg = super().get_save_config()
    cfg.update({'lengths': self.lengths, 'root_translation': self.root_translation})
    return cfg


class TwoDofArm(PlanarChain):
  """A two degrees-of-freedom planar arm, with a shoulder joint at the base and an elbow joint at the tip of the upper
  arm.

  Args:
    l1: `Float`, length (m) of the upper arm.
    l2: `Float`, length (m) of the forearm.
    name: `String`, the name of the skeleton.
  """

  def __init__(self, l1: float = 0.309, l2: float = 0.26, name: str = 'two_dof_arm'):
    super().__init__(lengths=[l1, l2], names=['upper_arm', 'forearm'], root_translation=False, name=name)
