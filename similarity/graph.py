"""
技能图引擎
基于共现与先后顺序构建技能关系图，提供技能相似度、关联技能、学习路径和消息传递
"""
import logging
import threading
from datetime import datetime
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import networkx as nx
import numpy as np

from config import GNNConfig, RANDOM_SEED
from exceptions import NoLearningPathError, SkillNotFoundError
from locks import ReadWriteLock
from models import JobProfile, ModelInfo, ModelPrediction, SkillPath, SkillRelationship, UserProfile
from similarity.vector import cosine_similarity

logger = logging.getLogger(__name__)

DIRECT_TYPES = ("prerequisite", "similar", "related", "general")


def normalize_skill(name: str) -> str:
    return name.strip().lower()


class SkillGraphEngine:
    """技能关系图（GNN 风格的邻域聚合）"""

    name = "gnn"

    def __init__(self, config=GNNConfig, rng: Optional[np.random.Generator] = None):
        self.config = config
        self.embedding_dim = config.EMBEDDING_DIM
        self.aggregation = config.AGGREGATION
        self.rng = rng if rng is not None else np.random.default_rng(RANDOM_SEED)

        self.graph = nx.DiGraph()
        self._lock = ReadWriteLock()
        self._cache_lock = threading.Lock()
        self._similarity_cache: Dict[Tuple[str, str], float] = {}
        self._path_cache: Dict[Tuple[str, str, int], Tuple[List[str], float]] = {}
        self._category_anchors: Dict[str, np.ndarray] = {}

        self.version = f"gnn_v{int(datetime.now().timestamp())}"
        self.loaded_at = datetime.now()
        self.last_propagation: Optional[datetime] = None

    # ---------- 构建 ----------

    def build_skill_graph(
        self,
        cooccurrences: Mapping[str, Mapping[str, int]],
        job_skill_sequences: Mapping[str, Sequence[str]],
    ):
        """
        构建技能图（会替换已有的图）

        Args:
            cooccurrences: skill -> {skill -> 共现次数}
            job_skill_sequences: job_id -> 该岗位按顺序列出的技能
        """
        sequences = {
            job_id: [normalize_skill(s) for s in skills if s and s.strip()]
            for job_id, skills in job_skill_sequences.items()
        }
        # 大小写不同的同名技能合并计数
        counts: Dict[str, Dict[str, int]] = {}
        for a, row in cooccurrences.items():
            merged = counts.setdefault(normalize_skill(a), {})
            for b, c in row.items():
                key = normalize_skill(b)
                merged[key] = merged.get(key, 0) + c

        skills: Dict[str, None] = {}
        for a, row in counts.items():
            skills[a] = None
            for b in row:
                skills[b] = None
        for seq in sequences.values():
            for s in seq:
                skills[s] = None

        with self._lock.write():
            graph = nx.DiGraph()
            for skill in skills:
                category = self._infer_category(skill)
                graph.add_node(skill, category=category, embedding=self._init_embedding(category))

            self._add_cooccurrence_edges(graph, counts)
            self._add_prerequisite_edges(graph, sequences)

            self.graph = graph
            self._clear_caches()

        logger.info("技能图构建完成: %d 个技能, %d 条边", self.graph.number_of_nodes(), self.graph.number_of_edges())

    def _add_cooccurrence_edges(self, graph: nx.DiGraph, counts: Dict[str, Dict[str, int]]):
        for a, row in counts.items():
            for b, count in row.items():
                if a == b or count < self.config.MIN_COOCCURRENCE:
                    continue
                weight = min(count / self.config.COOCCURRENCE_NORMALIZER, 1.0)
                graph.add_edge(a, b, weight=weight, edge_type="cooccurrence")

    def _add_prerequisite_edges(self, graph: nx.DiGraph, sequences: Dict[str, List[str]]):
        """技能在岗位描述中的平均位置明显靠前，且与后者经常同时出现时，视为先修"""
        positions: Dict[str, List[int]] = {}
        containing: Dict[str, set] = {}
        for job_id, seq in sequences.items():
            for i, skill in enumerate(seq):
                positions.setdefault(skill, []).append(i)
                containing.setdefault(skill, set()).add(job_id)

        avg = {skill: float(np.mean(p)) for skill, p in positions.items()}
        gap = self.config.PREREQUISITE_POSITION_GAP
        for a in avg:
            for b in avg:
                if a == b or not avg[a] < avg[b] - gap:
                    continue
                jobs_a, jobs_b = containing[a], containing[b]
                union = len(jobs_a | jobs_b)
                if union and len(jobs_a & jobs_b) / union >= self.config.PREREQUISITE_MIN_FREQUENCY:
                    graph.add_edge(a, b, weight=self.config.PREREQUISITE_WEIGHT, edge_type="prerequisite")

    def _infer_category(self, skill: str) -> str:
        for category, keywords in self.config.CATEGORY_KEYWORDS.items():
            if any(k in skill for k in keywords):
                return category
        return "general"

    def _init_embedding(self, category: str) -> np.ndarray:
        # 同类技能共享一个锚点方向，初始相似度更高
        anchor = self._category_anchors.get(category)
        if anchor is None:
            anchor = self.rng.normal(0.0, 1.0, self.embedding_dim)
            anchor = anchor / np.linalg.norm(anchor) * 0.3
            self._category_anchors[category] = anchor
        return anchor + self.rng.normal(0.0, 0.1, self.embedding_dim)

    # ---------- 查询 ----------

    def has_skill(self, skill: str) -> bool:
        with self._lock.read():
            return normalize_skill(skill) in self.graph

    def get_skill_similarity(self, skill_a: str, skill_b: str) -> float:
        """两个技能嵌入的余弦相似度（按技能对缓存）"""
        a, b = normalize_skill(skill_a), normalize_skill(skill_b)
        with self._lock.read():
            return self._similarity(a, b)

    def _similarity(self, a: str, b: str) -> float:
        # 调用方需持有读锁
        for skill in (a, b):
            if skill not in self.graph:
                raise SkillNotFoundError(skill)
        key = (a, b)
        with self._cache_lock:
            if key in self._similarity_cache:
                return self._similarity_cache[key]
        value = cosine_similarity(self.graph.nodes[a]["embedding"], self.graph.nodes[b]["embedding"])
        with self._cache_lock:
            self._similarity_cache[key] = value
        return value

    def get_related_skills(self, skill: str, relation_types: Iterable[str] = (), top_k: int = 10) -> List[SkillRelationship]:
        """
        获取关联技能（一度邻居 + 衰减后的二度邻居）

        Args:
            skill: 技能名称
            relation_types: 关系类型过滤，空表示全部；"direct" 表示全部一度关系，"indirect" 表示二度关系
            top_k: 返回数量，<= 0 表示不限制

        Returns:
            按强度降序排列的关系列表
        """
        origin = normalize_skill(skill)
        types = {t.lower() for t in relation_types}

        with self._lock.read():
            if origin not in self.graph:
                raise SkillNotFoundError(origin)

            best: Dict[str, SkillRelationship] = {}

            def keep(rel: SkillRelationship):
                current = best.get(rel.to_skill)
                if current is None or rel.strength > current.strength:
                    best[rel.to_skill] = rel

            for neighbor, attrs in self.graph[origin].items():
                rel_type = self._relation_type(origin, neighbor, attrs)
                if self._include(rel_type, 1, types):
                    keep(SkillRelationship(
                        from_skill=origin, to_skill=neighbor, strength=attrs["weight"],
                        type=rel_type, distance=1, confidence=attrs["weight"],
                    ))

            if self._include("indirect", 2, types):
                decay = self.config.SECOND_DEGREE_DECAY
                for neighbor, attrs in self.graph[origin].items():
                    for second, second_attrs in self.graph[neighbor].items():
                        if second == origin:
                            continue
                        strength = attrs["weight"] * second_attrs["weight"] * decay
                        keep(SkillRelationship(
                            from_skill=origin, to_skill=second, strength=strength,
                            type="indirect", distance=2, confidence=strength,
                        ))

        related = sorted(best.values(), key=lambda r: r.strength, reverse=True)
        if top_k > 0:
            related = related[:top_k]
        return related

    @staticmethod
    def _include(rel_type: str, distance: int, types: set) -> bool:
        if not types:
            return True
        if distance == 1 and "direct" in types:
            return True
        return rel_type in types

    def _relation_type(self, a: str, b: str, attrs: dict) -> str:
        if attrs.get("edge_type") == "prerequisite":
            return "prerequisite"
        similarity = self._similarity(a, b)
        if similarity > 0.8:
            return "similar"
        if similarity > 0.5:
            return "related"
        return "general"

    def get_skill_learning_path(self, from_skill: str, to_skill: str, max_depth: int = None) -> SkillPath:
        """
        最短学习路径（Dijkstra，边代价 = 1 - 权重）

        同一技能返回只含一个节点、难度为 0 的路径；不可达或超过 max_depth 跳时抛出 NoLearningPathError
        """
        a, b = normalize_skill(from_skill), normalize_skill(to_skill)
        if max_depth is None:
            max_depth = self.config.DEFAULT_MAX_DEPTH

        with self._lock.read():
            for skill in (a, b):
                if skill not in self.graph:
                    raise SkillNotFoundError(skill)

            with self._cache_lock:
                cached = self._path_cache.get((a, b, max_depth))
            if cached is None:
                cached = self._shortest_path(a, b, max_depth)
                with self._cache_lock:
                    self._path_cache[(a, b, max_depth)] = cached

        path, cost = cached
        if not path:
            raise NoLearningPathError(a, b, max_depth)
        return SkillPath(
            from_skill=a,
            to_skill=b,
            path=list(path),
            difficulty=cost,
            estimated_time_hours=len(path) * self.config.HOURS_PER_SKILL if a != b else 0,
            prerequisites=list(path[1:-1]),
        )

    def _shortest_path(self, a: str, b: str, max_depth: int) -> Tuple[List[str], float]:
        if a == b:
            return [a], 0.0
        try:
            cost, path = nx.single_source_dijkstra(
                self.graph, a, target=b, weight=lambda u, v, d: 1.0 - d["weight"]
            )
        except nx.NetworkXNoPath:
            return [], 0.0
        if len(path) - 1 <= max_depth:
            return path, float(cost)
        # 代价最优路径跳数超限时，改求至多 max_depth 跳内的最优路径
        return self._hop_bounded_path(a, b, max_depth)

    def _hop_bounded_path(self, a: str, b: str, max_depth: int) -> Tuple[List[str], float]:
        """逐跳松弛：第 k 轮后 best 为至多 k 跳可达的最小代价，代价相同保留先发现的"""
        best: Dict[str, Tuple[float, List[str]]] = {a: (0.0, [a])}
        for _ in range(max(max_depth, 0)):
            relaxed = dict(best)
            for node, (cost, path) in best.items():
                for nbr, attrs in self.graph[node].items():
                    candidate = cost + 1.0 - attrs["weight"]
                    if nbr not in relaxed or candidate < relaxed[nbr][0]:
                        relaxed[nbr] = (candidate, path + [nbr])
            best = relaxed
        if b not in best:
            return [], 0.0
        cost, path = best[b]
        return path, float(cost)

    # ---------- 消息传递 ----------

    def propagate_message(self, iterations: int = 1):
        """多轮邻域消息聚合，结束后使相似度与路径缓存失效"""
        ratio = self.config.SELF_RATIO
        with self._lock.write():
            for _ in range(iterations):
                updated = {}
                for node in self.graph.nodes:
                    messages = [
                        self.graph.nodes[nbr]["embedding"] * attrs["weight"]
                        for nbr, attrs in self.graph[node].items()
                    ]
                    aggregated = self._aggregate(messages)
                    updated[node] = ratio * self.graph.nodes[node]["embedding"] + (1.0 - ratio) * aggregated
                for node, embedding in updated.items():
                    self.graph.nodes[node]["embedding"] = embedding
            self._clear_caches()
            self.last_propagation = datetime.now()
        logger.debug("消息传递完成: %d 轮, 聚合方式 %s", iterations, self.aggregation)

    def _aggregate(self, messages: List[np.ndarray]) -> np.ndarray:
        if not messages:
            return np.zeros(self.embedding_dim)
        stacked = np.vstack(messages)
        if self.aggregation == "max":
            return stacked.max(axis=0)
        if self.aggregation == "attention":
            scores = np.linalg.norm(stacked, axis=1)
            total = scores.sum()
            if total > 0:
                scores = scores / total
            return (stacked * scores[:, None]).sum(axis=0)
        return stacked.mean(axis=0)

    def _clear_caches(self):
        with self._cache_lock:
            self._similarity_cache.clear()
            self._path_cache.clear()

    # ---------- 评分接口 ----------

    def skill_alignment(self, user: UserProfile, job: JobProfile) -> Tuple[float, float]:
        """
        用户技能与岗位技能在图上的对齐程度

        对每个在图中的岗位技能取最相近的用户技能，按重要度加权平均

        Returns:
            (分数, 置信度)；没有任何可比较的技能时返回中性分
        """
        user_skills = [normalize_skill(s.name) for s in user.skills]
        with self._lock.read():
            known_user = [s for s in user_skills if s in self.graph]
            total_weight = 0.0
            weighted = 0.0
            covered = 0
            for req in job.skills:
                skill = normalize_skill(req.name)
                if skill not in self.graph or not known_user:
                    continue
                best = max(max(0.0, self._similarity(u, skill)) for u in known_user)
                weight = req.importance or 1.0
                weighted += best * weight
                total_weight += weight
                covered += 1

        if covered == 0 or total_weight == 0:
            return self.config.NEUTRAL_SCORE, self.config.NEUTRAL_CONFIDENCE
        score = min(1.0, weighted / total_weight)
        coverage = covered / len(job.skills)
        return score, 0.4 + 0.4 * coverage

    def predict(self, user: UserProfile, job: JobProfile) -> ModelPrediction:
        score, confidence = self.skill_alignment(user, job)
        return ModelPrediction(
            model=self.name,
            score=score,
            confidence=confidence,
            cold_start=confidence == self.config.NEUTRAL_CONFIDENCE,
        )

    def get_embedding(self, skill: str) -> np.ndarray:
        """返回嵌入副本"""
        skill = normalize_skill(skill)
        with self._lock.read():
            if skill not in self.graph:
                raise SkillNotFoundError(skill)
            return self.graph.nodes[skill]["embedding"].copy()

    def get_edges(self) -> List[Dict]:
        with self._lock.read():
            return [
                {"source": u, "target": v, "weight": d["weight"], "edge_type": d["edge_type"]}
                for u, v, d in self.graph.edges(data=True)
            ]

    def get_model_info(self) -> ModelInfo:
        with self._lock.read():
            num_skills = self.graph.number_of_nodes()
            num_edges = self.graph.number_of_edges()
        return ModelInfo(
            model_id="gnn_skill_graph",
            model_type="gnn",
            version=self.version,
            loaded_at=self.loaded_at,
            input_shape=[self.embedding_dim],
            output_shape=[1],
            parameters=num_skills * self.embedding_dim,
            capabilities=["skill_similarity", "skill_relationships", "learning_paths", "graph_embeddings"],
            healthy=num_skills > 0,
            metadata={
                "num_skills": num_skills,
                "num_edges": num_edges,
                "embedding_dim": self.embedding_dim,
                "aggregation_type": self.aggregation,
                "last_propagation": self.last_propagation.isoformat() if self.last_propagation else None,
            },
        )

    def is_healthy(self) -> bool:
        with self._lock.read():
            return self.graph.number_of_nodes() > 0
