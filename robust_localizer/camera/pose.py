"""
相机位姿
旋转 + 相机中心表示，世界点到相机坐标 X_c = R (X - C)
"""

from typing import Optional
import numpy as np
import cv2

from ..solvers.geometry_utils import transform_points


class Pose3:
    """相机位姿（世界到相机）"""

    def __init__(self, rotation: Optional[np.ndarray] = None,
                 center: Optional[np.ndarray] = None):
        self.rotation = np.eye(3) if rotation is None else np.asarray(rotation, dtype=np.float64).copy()
        self.center = np.zeros(3) if center is None else np.asarray(center, dtype=np.float64).reshape(3).copy()

    @classmethod
    def from_rt(cls, R: np.ndarray, t: np.ndarray) -> 'Pose3':
        """由 [R|t]（X_c = R X + t）构造"""
        R = np.asarray(R, dtype=np.float64)
        t = np.asarray(t, dtype=np.float64).reshape(3)
        return cls(R, -R.T @ t)

    @classmethod
    def from_rvec_tvec(cls, rvec: np.ndarray, tvec: np.ndarray) -> 'Pose3':
        """由旋转向量和平移向量构造"""
        R, _ = cv2.Rodrigues(np.asarray(rvec, dtype=np.float64).reshape(3, 1))
        return cls.from_rt(R, tvec)

    @property
    def translation(self) -> np.ndarray:
        return -self.rotation @ self.center

    @property
    def rvec(self) -> np.ndarray:
        """旋转向量 [3]"""
        rvec, _ = cv2.Rodrigues(self.rotation)
        return rvec.reshape(3)

    def as_matrix(self) -> np.ndarray:
        """3x4 矩阵 [R|t]"""
        return np.hstack([self.rotation, self.translation.reshape(3, 1)])

    def transform(self, points: np.ndarray) -> np.ndarray:
        """世界坐标 -> 相机坐标 [N, 3]"""
        return transform_points(points, self.rotation, self.translation)

    def depth(self, points: np.ndarray) -> np.ndarray:
        """点在相机坐标系下的深度"""
        return self.transform(points)[:, 2]

    def copy(self) -> 'Pose3':
        return Pose3(self.rotation, self.center)

    def __str__(self) -> str:
        return f"Pose3(rvec={np.round(self.rvec, 6).tolist()}, center={np.round(self.center, 6).tolist()})"

    def __repr__(self) -> str:
        return str(self)
