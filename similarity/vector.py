"""
向量工具
余弦相似度、sigmoid、softmax 等基础运算
"""
import numpy as np


def cosine_similarity(a: np.ndarray, b: np.ndarray) -> float:
    """余弦相似度，任一向量为零向量时返回 0"""
    norm_a = np.linalg.norm(a)
    norm_b = np.linalg.norm(b)
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return float(np.dot(a, b) / (norm_a * norm_b))


def sigmoid(x: float) -> float:
    # 数值稳定写法
    if x >= 0:
        return float(1.0 / (1.0 + np.exp(-x)))
    z = np.exp(x)
    return float(z / (1.0 + z))


def softmax(values: np.ndarray) -> np.ndarray:
    shifted = np.asarray(values, dtype=float) - np.max(values)
    exp = np.exp(shifted)
    return exp / exp.sum()


def clip01(x: float) -> float:
    return float(min(1.0, max(0.0, x)))
