"""
协同过滤嵌入引擎 (NCF)
GMF + MLP 组合预测用户-岗位交互概率，支持在线增量更新与小批量拟合
"""
import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

import numpy as np
import torch
import torch.nn as nn
import torch.optim as optim

from config import NCFConfig, RANDOM_SEED
from exceptions import EmbeddingNotFoundError
from locks import ReadWriteLock
from models import InteractionSample, JobProfile, ModelInfo, ModelPrediction, UserProfile
from similarity.vector import sigmoid
from training.training_utils import calculate_metrics, split_samples

logger = logging.getLogger(__name__)


class InteractionMLP(nn.Module):
    """拼接嵌入上的前馈网络（ReLU 隐藏层，线性输出）"""
    def __init__(self, input_dim, hidden_dims=(64, 32)):
        super(InteractionMLP, self).__init__()

        layers = []
        prev_dim = input_dim
        for hidden_dim in hidden_dims:
            layers.append(nn.Linear(prev_dim, hidden_dim))
            layers.append(nn.ReLU())
            prev_dim = hidden_dim

        # 输出层
        layers.append(nn.Linear(prev_dim, 1))
        self.model = nn.Sequential(*layers)

    def forward(self, x):
        return self.model(x).squeeze(-1)


class EmbeddingInteractionEngine:
    """用户/岗位嵌入 + 偏置 + MLP"""

    name = "ncf"

    def __init__(self, config=NCFConfig, rng: Optional[np.random.Generator] = None, seed: int = RANDOM_SEED):
        if config.EMBEDDING_DIM <= 0:
            raise ValueError(f"嵌入维度必须为正数: {config.EMBEDDING_DIM}")
        self.config = config
        self.embedding_dim = config.EMBEDDING_DIM
        self.learning_rate = config.LEARNING_RATE
        self.regularization = config.REGULARIZATION
        self.rng = rng if rng is not None else np.random.default_rng(seed)

        self.user_embeddings: Dict[str, np.ndarray] = {}
        self.job_embeddings: Dict[str, np.ndarray] = {}
        self.user_bias: Dict[str, float] = {}
        self.job_bias: Dict[str, float] = {}
        self.global_bias = 0.0

        torch.manual_seed(seed)
        self.mlp = InteractionMLP(self.embedding_dim * 2, config.HIDDEN_LAYERS)
        self.mlp.eval()

        self._lock = ReadWriteLock()
        self.version = f"ncf_v{int(datetime.now().timestamp())}"
        self.loaded_at = datetime.now()
        self.last_training: Optional[datetime] = None
        self.training_history: List[Dict[str, float]] = []

    # ---------- 初始化 ----------

    def initialize_embeddings(self, user_ids: Iterable[str] = (), job_ids: Iterable[str] = ()) -> int:
        """为未出现过的用户/岗位随机初始化嵌入，返回新建数量"""
        with self._lock.write():
            return self._initialize(user_ids, job_ids)

    def _initialize(self, user_ids: Iterable[str], job_ids: Iterable[str]) -> int:
        std = 1.0 / np.sqrt(self.embedding_dim)
        created = 0
        for uid in user_ids:
            if uid not in self.user_embeddings:
                self.user_embeddings[uid] = self.rng.normal(0.0, std, self.embedding_dim)
                self.user_bias[uid] = float(self.rng.normal(0.0, 0.01))
                created += 1
        for jid in job_ids:
            if jid not in self.job_embeddings:
                self.job_embeddings[jid] = self.rng.normal(0.0, std, self.embedding_dim)
                self.job_bias[jid] = float(self.rng.normal(0.0, 0.01))
                created += 1
        return created

    def has_embeddings(self, user_id: str, job_id: str) -> bool:
        with self._lock.read():
            return user_id in self.user_embeddings and job_id in self.job_embeddings

    # ---------- 预测 ----------

    def predict_interaction(self, user_id: str, job_id: str) -> Tuple[float, float, bool]:
        """
        预测交互概率

        Returns:
            (概率, 置信度, 是否冷启动)
        """
        with self._lock.read():
            if user_id not in self.user_embeddings or job_id not in self.job_embeddings:
                return self.config.COLD_START_SCORE, self.config.COLD_START_CONFIDENCE, True
            probability = self._predict(user_id, job_id)
            return probability, self._confidence(user_id, job_id, probability), False

    def _logit(self, u: np.ndarray, j: np.ndarray, user_id: str, job_id: str) -> float:
        gmf = float(np.dot(u, j))
        with torch.no_grad():
            x = torch.as_tensor(np.concatenate([u, j]), dtype=torch.float32)
            mlp = float(self.mlp(x))
        ratio = self.config.GMF_RATIO
        combined = ratio * gmf + (1.0 - ratio) * mlp
        return combined + self.user_bias[user_id] + self.job_bias[job_id] + self.global_bias

    def _predict(self, user_id: str, job_id: str) -> float:
        u = self.user_embeddings[user_id]
        j = self.job_embeddings[job_id]
        return sigmoid(self._logit(u, j, user_id, job_id))

    def _confidence(self, user_id: str, job_id: str, probability: float) -> float:
        # 嵌入范数越大说明训练越充分
        norm_product = np.linalg.norm(self.user_embeddings[user_id]) * np.linalg.norm(self.job_embeddings[job_id])
        embedding_confidence = min(float(norm_product), 1.0)
        certainty = abs(probability - 0.5) * 2.0
        return (embedding_confidence + certainty) / 2.0

    def predict(self, user: UserProfile, job: JobProfile) -> ModelPrediction:
        score, confidence, cold = self.predict_interaction(user.user_id, job.job_id)
        return ModelPrediction(model=self.name, score=score, confidence=confidence, cold_start=cold)

    def get_top_recommendations(self, user_id: str, job_ids: List[str], top_n: int = 10) -> List[Dict[str, Any]]:
        """对候选岗位打分并返回前 top_n 个"""
        scored = []
        for job_id in job_ids:
            score, confidence, cold = self.predict_interaction(user_id, job_id)
            scored.append({'job_id': job_id, 'score': score, 'confidence': confidence, 'cold_start': cold})
        scored.sort(key=lambda x: x['score'], reverse=True)
        return scored[:max(top_n, 0)]

    # ---------- 在线更新 ----------

    def update_embeddings(self, user_id: str, job_id: str, outcome: float) -> float:
        """
        单步 SGD 更新嵌入与偏置

        Args:
            user_id: 用户ID
            job_id: 岗位ID
            outcome: 观测到的交互强度 (0-1)

        Returns:
            更新前的预测误差

        Raises:
            EmbeddingNotFoundError: 嵌入不存在时抛出，不修改任何状态
        """
        with self._lock.write():
            if user_id not in self.user_embeddings:
                raise EmbeddingNotFoundError("user", user_id)
            if job_id not in self.job_embeddings:
                raise EmbeddingNotFoundError("job", job_id)
            return self._sgd_step(user_id, job_id, outcome)

    def _sgd_step(self, user_id: str, job_id: str, outcome: float) -> float:
        error = outcome - self._predict(user_id, job_id)
        lr, reg = self.learning_rate, self.regularization

        u = self.user_embeddings[user_id]
        j = self.job_embeddings[job_id]
        new_u = u + lr * (error * j - reg * u)
        new_j = j + lr * (error * u - reg * j)
        self.user_embeddings[user_id] = new_u
        self.job_embeddings[job_id] = new_j

        self.user_bias[user_id] += lr * (error - reg * self.user_bias[user_id])
        self.job_bias[job_id] += lr * (error - reg * self.job_bias[job_id])
        return error

    # ---------- 批量拟合 ----------

    def train_model(
        self,
        samples: List[InteractionSample],
        epochs: int = None,
        batch_size: int = None,
        validation_split: float = None,
        patience: int = None,
    ) -> List[Dict[str, float]]:
        """
        在交互样本上做多轮小批量拟合

        每个批次先对嵌入和偏置做逐样本 SGD，再用 Adam 更新 MLP 一步。
        验证损失连续 patience 轮不下降时提前停止。

        Returns:
            每轮指标列表
        """
        cfg = self.config
        epochs = cfg.EPOCHS if epochs is None else epochs
        batch_size = cfg.BATCH_SIZE if batch_size is None else batch_size
        validation_split = cfg.VALIDATION_SPLIT if validation_split is None else validation_split
        patience = cfg.EARLY_STOPPING_PATIENCE if patience is None else patience

        if not samples:
            raise ValueError('没有有效的训练样本')

        train, val = split_samples(samples, validation_split)
        history = []
        best_loss = float('inf')
        stale = 0

        with self._lock.write():
            self._initialize([s.user_id for s in samples], [s.job_id for s in samples])
            optimizer = optim.Adam(self.mlp.parameters(), lr=self.learning_rate)

            for epoch in range(1, epochs + 1):
                order = self.rng.permutation(len(train))
                losses = []
                for start in range(0, len(order), batch_size):
                    batch = [train[i] for i in order[start:start + batch_size]]
                    for s in batch:
                        error = self._sgd_step(s.user_id, s.job_id, s.label)
                        losses.append(error ** 2)
                    self._train_mlp_batch(batch, optimizer)

                row = {'epoch': epoch, 'loss': float(np.mean(losses)) if losses else 0.0}
                if val:
                    y_true = np.array([s.label for s in val])
                    y_pred = np.array([self._predict(s.user_id, s.job_id) for s in val])
                    metrics = calculate_metrics(y_true, y_pred)
                    row['val_loss'] = float(np.mean((y_pred - y_true) ** 2))
                    row['val_accuracy'] = metrics['accuracy']
                    row['val_rmse'] = metrics['rmse']
                    if 'auc' in metrics:
                        row['val_auc'] = metrics['auc']
                history.append(row)
                logger.info("NCF Epoch %d - loss %.4f, val_loss %s", epoch, row['loss'], row.get('val_loss'))

                monitored = row.get('val_loss', row['loss'])
                if monitored < best_loss - 1e-6:
                    best_loss = monitored
                    stale = 0
                else:
                    stale += 1
                    if patience > 0 and stale >= patience:
                        logger.info("NCF 在第 %d 轮提前停止", epoch)
                        break

            self.mlp.eval()
            self.last_training = datetime.now()
            self.training_history = history
        return history

    def _train_mlp_batch(self, batch: List[InteractionSample], optimizer: optim.Optimizer):
        self.mlp.train()
        u = np.stack([self.user_embeddings[s.user_id] for s in batch])
        j = np.stack([self.job_embeddings[s.job_id] for s in batch])
        x = torch.as_tensor(np.concatenate([u, j], axis=1), dtype=torch.float32)
        ratio = self.config.GMF_RATIO
        # GMF 与偏置视为常数
        offset = torch.as_tensor(
            [ratio * float(np.dot(u[k], j[k])) + self.user_bias[s.user_id] + self.job_bias[s.job_id] + self.global_bias
             for k, s in enumerate(batch)],
            dtype=torch.float32,
        )
        target = torch.as_tensor([s.label for s in batch], dtype=torch.float32)

        optimizer.zero_grad()
        logits = offset + (1.0 - ratio) * self.mlp(x)
        loss = nn.functional.binary_cross_entropy_with_logits(logits, target)
        loss.backward()
        optimizer.step()
        self.mlp.eval()

    # ---------- 状态 ----------

    def state_dict(self) -> Dict[str, Any]:
        """可序列化的引擎状态（副本）"""
        with self._lock.read():
            return {
                'user_embeddings': {k: v.copy() for k, v in self.user_embeddings.items()},
                'job_embeddings': {k: v.copy() for k, v in self.job_embeddings.items()},
                'user_bias': dict(self.user_bias),
                'job_bias': dict(self.job_bias),
                'global_bias': self.global_bias,
                'mlp': {k: v.clone() for k, v in self.mlp.state_dict().items()},
            }

    def load_state_dict(self, state: Dict[str, Any]):
        with self._lock.write():
            self.user_embeddings = {k: np.asarray(v, dtype=float) for k, v in state['user_embeddings'].items()}
            self.job_embeddings = {k: np.asarray(v, dtype=float) for k, v in state['job_embeddings'].items()}
            self.user_bias = dict(state['user_bias'])
            self.job_bias = dict(state['job_bias'])
            self.global_bias = float(state.get('global_bias', 0.0))
            self.mlp.load_state_dict(state['mlp'])
            self.mlp.eval()

    def count_parameters(self) -> int:
        count = sum(p.numel() for p in self.mlp.parameters())
        count += (len(self.user_embeddings) + len(self.job_embeddings)) * self.embedding_dim
        count += len(self.user_bias) + len(self.job_bias) + 1
        return int(count)

    def get_model_info(self) -> ModelInfo:
        with self._lock.read():
            num_users = len(self.user_embeddings)
            num_jobs = len(self.job_embeddings)
            parameters = self.count_parameters()
        return ModelInfo(
            model_id="ncf_embeddings",
            model_type="ncf",
            version=self.version,
            loaded_at=self.loaded_at,
            input_shape=[self.embedding_dim * 2],
            output_shape=[1],
            parameters=parameters,
            capabilities=["user_job_interaction", "online_update", "top_recommendations"],
            healthy=True,
            metadata={
                'embedding_dim': self.embedding_dim,
                'hidden_layers': list(self.config.HIDDEN_LAYERS),
                'learning_rate': self.learning_rate,
                'regularization': self.regularization,
                'num_users': num_users,
                'num_jobs': num_jobs,
                'last_training': self.last_training.isoformat() if self.last_training else None,
            },
        )

    def is_healthy(self) -> bool:
        with self._lock.read():
            return all(torch.isfinite(p).all() for p in self.mlp.parameters())
