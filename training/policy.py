"""
强化学习策略引擎
DQN：Q 网络 + 目标网络 + 经验回放，epsilon-greedy 选择推荐强度
"""
import copy
import logging
import threading
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

import numpy as np
import torch
import torch.nn as nn
import torch.optim as optim

from config import RLConfig, RANDOM_SEED
from exceptions import InsufficientExperienceError
from features.extractor import StateEncoder
from locks import ReadWriteLock
from models import JobProfile, ModelInfo, ModelPrediction, RLPerformanceMetrics, UserProfile
from similarity.vector import clip01, sigmoid, softmax
from training.replay import Experience, ExperienceReplay

logger = logging.getLogger(__name__)

PROGRESS_WINDOW = 100


class QNetwork(nn.Module):
    """状态 -> 每个动作的 Q 值"""
    def __init__(self, state_dim, action_dim, hidden_dims=(256, 128, 64)):
        super(QNetwork, self).__init__()

        layers = []
        prev_dim = state_dim
        for hidden_dim in hidden_dims:
            layers.append(nn.Linear(prev_dim, hidden_dim))
            layers.append(nn.ReLU())
            prev_dim = hidden_dim

        # Q 值输出不加激活
        layers.append(nn.Linear(prev_dim, action_dim))
        self.model = nn.Sequential(*layers)

    def forward(self, x):
        return self.model(x)


class PolicyEngine:
    """推荐强度策略（在线 DQN）"""

    name = "rl"

    def __init__(self, config=RLConfig, encoder: StateEncoder = None,
                 rng: Optional[np.random.Generator] = None, seed: int = RANDOM_SEED):
        self.config = config
        self.actions = list(config.ACTIONS)
        self.action_index = {a: i for i, a in enumerate(self.actions)}
        self.multipliers = np.asarray(config.ACTION_MULTIPLIERS, dtype=float)
        self.encoder = encoder or StateEncoder(config.STATE_DIM)
        self.rng = rng if rng is not None else np.random.default_rng(seed)
        self._rng_lock = threading.Lock()

        torch.manual_seed(seed)
        self.q_network = QNetwork(config.STATE_DIM, len(self.actions), config.HIDDEN_LAYERS)
        self.target_network = copy.deepcopy(self.q_network)
        self.target_network.eval()
        self.optimizer = optim.SGD(self.q_network.parameters(), lr=config.LEARNING_RATE)

        self.replay = ExperienceReplay(config.MEMORY_SIZE, rng=np.random.default_rng(seed + 1))
        self.epsilon = config.EPSILON
        self.training_steps = 0
        self.metrics = RLPerformanceMetrics(exploration_rate=self.epsilon)

        self._lock = ReadWriteLock()
        self.version = f"rl_v{int(datetime.now().timestamp())}"
        self.loaded_at = datetime.now()

    # ---------- 动作 / 奖励映射 ----------

    def _normalize_action(self, action: str) -> str:
        action = (action or '').strip().lower()
        return self.config.ACTION_ALIASES.get(action, action)

    def encode_action(self, action: str) -> int:
        """用户行为 -> 动作下标"""
        action = self._normalize_action(action)
        if action in self.action_index:
            return self.action_index[action]
        if action in ('applied', 'viewed', 'interested'):
            return self.action_index['recommend_high']
        if action in ('saved', 'shared'):
            return self.action_index['recommend_medium']
        if action in ('dismissed', 'not_interested'):
            return self.action_index['no_recommend']
        return self.action_index['recommend_low']

    def calculate_reward(self, action: str, outcome: float) -> float:
        action = self._normalize_action(action)
        if action in self.config.FIXED_REWARDS:
            return self.config.FIXED_REWARDS[action]
        return outcome * self.config.REWARD_MULTIPLIERS.get(action, 1.0)

    # ---------- 反馈与训练 ----------

    def process_user_feedback(self, user: UserProfile, job: JobProfile, action: str, outcome: float) -> Optional[float]:
        """
        记录一次用户反馈，经验足够时训练一步

        Args:
            user: 用户画像
            job: 岗位画像
            action: 用户行为（applied/hired/viewed/dismissed/...）
            outcome: 结果强度 (0-1)

        Returns:
            本次训练损失；未训练时返回 None
        """
        if not 0.0 <= outcome <= 1.0:
            raise ValueError(f"outcome 必须在 [0, 1] 之间: {outcome}")

        state = self.encoder.encode(user, job)
        action_idx = self.encode_action(action)
        reward = self.calculate_reward(action, outcome)

        with self._lock.write():
            # 每次交互视为终止状态
            self.replay.add(Experience(state=state, action=action_idx, reward=reward, next_state=state, done=True))
            loss = None
            if len(self.replay) >= self.config.BATCH_SIZE:
                loss = self._train_step(self.config.BATCH_SIZE)
            self._record_reward(reward)
        return loss

    def _train_step(self, batch_size: int) -> float:
        batch = self.replay.sample(batch_size)
        states = torch.as_tensor(np.stack([e.state for e in batch]), dtype=torch.float32)
        next_states = torch.as_tensor(np.stack([e.next_state for e in batch]), dtype=torch.float32)
        actions = torch.as_tensor([e.action for e in batch], dtype=torch.long)
        rewards = torch.as_tensor([e.reward for e in batch], dtype=torch.float32)
        not_done = torch.as_tensor([0.0 if e.done else 1.0 for e in batch], dtype=torch.float32)

        with torch.no_grad():
            next_q = self.target_network(next_states).max(dim=1).values
            targets = rewards + self.config.DISCOUNT_FACTOR * next_q * not_done

        self.q_network.train()
        q_taken = self.q_network(states).gather(1, actions.unsqueeze(1)).squeeze(1)
        loss = nn.functional.mse_loss(q_taken, targets)
        self.optimizer.zero_grad()
        loss.backward()
        self.optimizer.step()
        self.q_network.eval()

        self.training_steps += 1
        if self.training_steps % self.config.TARGET_UPDATE_FREQ == 0:
            self.target_network.load_state_dict(self.q_network.state_dict())
            logger.debug("目标网络已同步 (step=%d)", self.training_steps)
        self.epsilon = max(self.config.EPSILON_MIN, self.epsilon * self.config.EPSILON_DECAY)
        self.metrics.last_training_time = datetime.now()
        return float(loss.item())

    def train_from_batch(self, batch_size: int = None, epochs: int = 1) -> List[float]:
        """在回放缓冲上训练若干轮，经验不足时抛出 InsufficientExperienceError"""
        batch_size = batch_size or self.config.BATCH_SIZE
        with self._lock.write():
            have = len(self.replay)
            if have < batch_size:
                raise InsufficientExperienceError(have, batch_size)
            losses = []
            for epoch in range(epochs):
                losses.append(self._train_step(batch_size))
                if epoch % 10 == 0:
                    logger.info("RL 训练 - Epoch %d, Loss: %.4f, Epsilon: %.4f", epoch, losses[-1], self.epsilon)
            return losses

    def _record_reward(self, reward: float):
        m = self.metrics
        m.cumulative_reward += reward
        m.episode_count += 1
        m.total_actions += 1
        if reward > 0:
            m.successful_actions += 1
        m.average_reward = m.cumulative_reward / m.episode_count
        m.learning_progress.append(m.average_reward)
        if len(m.learning_progress) > PROGRESS_WINDOW:
            m.learning_progress = m.learning_progress[-PROGRESS_WINDOW:]

    # ---------- 推理 ----------

    def get_q_values(self, user: UserProfile, job: JobProfile) -> np.ndarray:
        state = torch.as_tensor(self.encoder.encode(user, job), dtype=torch.float32)
        with self._lock.read():
            with torch.no_grad():
                return self.q_network(state).numpy().astype(float)

    def get_optimal_action(self, user: UserProfile, job: JobProfile, exploring: bool = False) -> Tuple[str, float]:
        """
        epsilon-greedy 选动作

        Returns:
            (动作名, 置信度)；随机探索时置信度固定为 0.5
        """
        q_values = self.get_q_values(user, job)
        if exploring:
            with self._rng_lock:
                explore = self.rng.random() < self.epsilon
                random_idx = int(self.rng.integers(len(self.actions)))
            if explore:
                return self.actions[random_idx], self.config.RANDOM_ACTION_CONFIDENCE
        idx = int(np.argmax(q_values))
        return self.actions[idx], float(softmax(q_values)[idx])

    def get_recommendation_score(self, user: UserProfile, job: JobProfile) -> float:
        """Q 值按动作倍数线性组合后过 sigmoid，结果在 [0, 1]"""
        q_values = self.get_q_values(user, job)
        return clip01(sigmoid(float(np.dot(q_values, self.multipliers))))

    def predict(self, user: UserProfile, job: JobProfile) -> ModelPrediction:
        q_values = self.get_q_values(user, job)
        score = clip01(sigmoid(float(np.dot(q_values, self.multipliers))))
        probs = softmax(q_values)
        best = int(np.argmax(q_values))
        return ModelPrediction(
            model=self.name,
            score=score,
            confidence=float(probs[best]),
            metadata={'action': self.actions[best]},
        )

    # ---------- 状态 ----------

    def get_performance_metrics(self) -> RLPerformanceMetrics:
        with self._lock.read():
            snapshot = self.metrics.model_copy(deep=True)
            snapshot.exploration_rate = self.epsilon
            snapshot.training_steps = self.training_steps
            return snapshot

    def state_dict(self) -> Dict[str, Any]:
        with self._lock.read():
            return {
                'q_network': {k: v.clone() for k, v in self.q_network.state_dict().items()},
                'target_network': {k: v.clone() for k, v in self.target_network.state_dict().items()},
                'epsilon': self.epsilon,
                'training_steps': self.training_steps,
            }

    def load_state_dict(self, state: Dict[str, Any]):
        with self._lock.write():
            self.q_network.load_state_dict(state['q_network'])
            self.target_network.load_state_dict(state.get('target_network', state['q_network']))
            self.epsilon = float(state.get('epsilon', self.epsilon))
            self.training_steps = int(state.get('training_steps', 0))

    def get_model_info(self) -> ModelInfo:
        with self._lock.read():
            parameters = sum(p.numel() for p in self.q_network.parameters())
            experiences = len(self.replay)
            epsilon = self.epsilon
            steps = self.training_steps
        return ModelInfo(
            model_id="rl_dqn",
            model_type="rl",
            version=self.version,
            loaded_at=self.loaded_at,
            input_shape=[self.config.STATE_DIM],
            output_shape=[len(self.actions)],
            parameters=int(parameters),
            capabilities=["action_selection", "recommendation_score", "online_learning"],
            healthy=True,
            metadata={
                'exploration_rate': epsilon,
                'learning_rate': self.config.LEARNING_RATE,
                'discount_factor': self.config.DISCOUNT_FACTOR,
                'training_steps': steps,
                'experience_count': experiences,
            },
        )

    def is_healthy(self) -> bool:
        with self._lock.read():
            return all(bool(torch.isfinite(p).all()) for p in self.q_network.parameters())
