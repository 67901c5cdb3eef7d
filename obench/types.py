"""Define type aliases purely for documentation purposes."""
import numpy as np
from typing import Sequence

# Sequences of a certain length.
Sequence2 = Sequence
Sequence3 = Sequence

# Numpy arrays of a certain shape. float implied.
Vector3 = np.ndarray # (3,)

# Complex arrays of a certain shape.
JonesVector = np.ndarray # (2,) complex
JonesMatrix = np.ndarray # (2, 2) complex

# Numpy arrays with final dimension of certain length (for stacked samples).
Vectors3 = np.ndarray # (..., 3)
Scalars = np.ndarray # (...,)
