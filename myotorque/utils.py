"""Tensor helpers shared by the `myotorque` modules. Every point is a `3`-elements tensor, and every transform a
`4 x 4` homogeneous roto-translation matrix.
"""

import torch as th


DTYPE = th.float64
DEVICE = th.device("cpu")


def to_tensor(x, device: th.device | None = None) -> th.Tensor:
  """Converts a `float`, `list`, `tuple`, `numpy.ndarray` or `torch.Tensor` into a `float64` tensor."""
  return th.as_tensor(x, dtype=DTYPE, device=DEVICE if device is None else device)


def translation(x, y, z=0.) -> th.Tensor:
  rt = th.eye(4, dtype=DTYPE)
  rt[0, 3] = x
  rt[1, 3] = y
  rt[2, 3] = z
  return rt


def rotation_z(angle) -> th.Tensor:
  angle = to_tensor(angle)
  rt = th.eye(4, dtype=DTYPE)
  c, s = th.cos(angle), th.sin(angle)
  rt[0, 0] = c
  rt[0, 1] = -s
  rt[1, 0] = s
  rt[1, 1] = c
  return rt


def transpose_rt(rt: th.Tensor) -> th.Tensor:
  """Inverse of a homogeneous roto-translation matrix, that is `[R^T, -R^T t]`."""
  inv = th.eye(4, dtype=rt.dtype, device=rt.device)
  rot_t = rt[:3, :3].transpose(0, 1)
  inv[:3, :3] = rot_t
  inv[:3, 3] = -rot_t @ rt[:3, 3]
  return inv


def apply_rt(rt: th.Tensor, point: th.Tensor) -> th.Tensor:
  return rt[:3, :3] @ point + rt[:3, 3]
