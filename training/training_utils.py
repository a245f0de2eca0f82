"""
训练工具函数
负责：交互样本切分、指标计算、训练摘要打印
"""
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np
from sklearn.metrics import roc_auc_score
from sklearn.model_selection import train_test_split

from config import RANDOM_SEED
from models import InteractionSample


def calculate_data_stats(labels: Sequence[float], threshold: float = 0.5) -> Dict[str, Any]:
    """计算数据集统计信息（label > threshold 视为正样本）"""
    total = len(labels)
    positive = int(sum(1 for y in labels if y > threshold))
    negative = total - positive

    return {
        'total_samples': total,
        'positive_samples': positive,
        'negative_samples': negative,
        'positive_ratio': positive / total if total > 0 else 0,
        'negative_ratio': negative / total if total > 0 else 0
    }


def split_samples(
    samples: List[InteractionSample],
    validation_split: float = 0.2,
    min_samples_for_split: int = 10,
    seed: int = RANDOM_SEED,
) -> Tuple[List[InteractionSample], List[InteractionSample]]:
    """
    切分训练集和验证集

    Returns:
        (train, val)；样本过少或 validation_split <= 0 时 val 为空
    """
    if validation_split <= 0 or len(samples) < min_samples_for_split:
        return list(samples), []

    labels = [1 if s.label > 0.5 else 0 for s in samples]
    stratify = labels if 0 < sum(labels) < len(labels) and min(sum(labels), len(labels) - sum(labels)) >= 2 else None
    train, val = train_test_split(samples, test_size=validation_split, random_state=seed, stratify=stratify)
    return list(train), list(val)


def calculate_metrics(y_true: np.ndarray, y_pred_prob: np.ndarray, threshold: float = 0.5) -> Dict[str, float]:
    """
    计算分类与回归指标

    Args:
        y_true: 真实交互强度 (0-1)
        y_pred_prob: 预测概率
        threshold: 分类阈值

    Returns:
        包含 accuracy, precision, recall, f1, rmse, (auc) 的字典
    """
    y_true = np.asarray(y_true, dtype=float)
    y_pred_prob = np.asarray(y_pred_prob, dtype=float)
    true_label = (y_true > threshold).astype(int)
    y_pred = (y_pred_prob > threshold).astype(int)

    accuracy = np.mean(y_pred == true_label) if len(y_true) else 0.0

    # 混淆矩阵元素
    tp = np.sum((y_pred == 1) & (true_label == 1))
    fp = np.sum((y_pred == 1) & (true_label == 0))
    fn = np.sum((y_pred == 0) & (true_label == 1))
    tn = np.sum((y_pred == 0) & (true_label == 0))

    precision = tp / max(tp + fp, 1)
    recall = tp / max(tp + fn, 1)
    f1 = 2 * precision * recall / max(precision + recall, 1e-10)
    rmse = float(np.sqrt(np.mean((y_pred_prob - y_true) ** 2))) if len(y_true) else 0.0

    metrics = {
        'accuracy': float(accuracy),
        'precision': float(precision),
        'recall': float(recall),
        'f1': float(f1),
        'rmse': rmse,
        'tp': int(tp),
        'fp': int(fp),
        'fn': int(fn),
        'tn': int(tn)
    }
    # 只有一类标签时 AUC 无定义
    if 0 < true_label.sum() < len(true_label):
        metrics['auc'] = float(roc_auc_score(true_label, y_pred_prob))
    return metrics


def print_training_summary(
    data_stats: Dict[str, Any],
    history: Optional[List[Dict[str, float]]] = None,
):
    """打印训练摘要"""
    print('\n' + '='*50)
    print('训练数据统计')
    print('='*50)
    print(f"总样本数: {data_stats['total_samples']}")
    print(f"正样本: {data_stats['positive_samples']} ({data_stats['positive_ratio']*100:.1f}%)")
    print(f"负样本: {data_stats['negative_samples']} ({data_stats['negative_ratio']*100:.1f}%)")

    if history:
        print('\n' + '='*50)
        print('逐轮指标')
        print('='*50)
        for row in history:
            line = f"Epoch {row.get('epoch', 0):>3} | loss={row.get('loss', 0):.4f}"
            if 'val_loss' in row:
                line += f" | val_loss={row['val_loss']:.4f}"
            if 'val_accuracy' in row:
                line += f" | 准确率={row['val_accuracy']:.4f}"
            if 'val_auc' in row:
                line += f" | AUC={row['val_auc']:.4f}"
            print(line)

    print('='*50)
