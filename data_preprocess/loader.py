"""
画像数据加载器
支持从 JSONL、JSON、CSV 加载用户、岗位和交互数据
"""
import json
import logging
from itertools import combinations
from pathlib import Path
from typing import Dict, Iterable, List, Tuple, Type

import pandas as pd
from pydantic import BaseModel

from models import InteractionSample, JobProfile, UserProfile

logger = logging.getLogger(__name__)

# CSV 中以 JSON 字符串存放的嵌套字段
NESTED_COLUMNS = ('skills', 'availability', 'interests')


class ProfileLoader:
    """画像数据加载器"""

    def __init__(self, file_path: Path):
        """
        初始化加载器

        Args:
            file_path: 数据文件路径（支持 .jsonl, .json, .csv）
        """
        self.file_path = Path(file_path)
        self.file_type = self._detect_file_type()

    def _detect_file_type(self) -> str:
        """检测文件类型"""
        suffix = self.file_path.suffix.lower()
        if suffix == '.jsonl':
            return 'jsonl'
        elif suffix == '.json':
            return 'json'
        elif suffix == '.csv':
            return 'csv'
        else:
            raise ValueError(f"不支持的文件格式: {suffix}")

    def load(self) -> pd.DataFrame:
        logger.info("正在加载数据: %s (格式: %s)", self.file_path, self.file_type)
        if self.file_type == 'jsonl':
            data = pd.read_json(self.file_path, lines=True, dtype=False)
        elif self.file_type == 'json':
            data = pd.read_json(self.file_path, dtype=False)
        else:
            data = pd.read_csv(self.file_path, dtype={'user_id': str, 'job_id': str})
        logger.info("已加载 %d 条记录", len(data))
        return data

    def to_dict_list(self) -> List[Dict]:
        """转换为字典列表，NaN 置为 None，CSV 的嵌套列解析为对象"""
        records = self.load().to_dict('records')
        for record in records:
            for key, value in list(record.items()):
                if isinstance(value, float) and pd.isna(value):
                    record[key] = None
                elif key in NESTED_COLUMNS and isinstance(value, str):
                    record[key] = json.loads(value)
            # 缺失的可选字段交给模型默认值
            for key in [k for k, v in record.items() if v is None]:
                del record[key]
        return records

    def _load_models(self, model: Type[BaseModel]) -> list:
        return [model.model_validate(record) for record in self.to_dict_list()]

    def load_users(self) -> List[UserProfile]:
        return self._load_models(UserProfile)

    def load_jobs(self) -> List[JobProfile]:
        return self._load_models(JobProfile)

    def load_interactions(self) -> List[InteractionSample]:
        return self._load_models(InteractionSample)


def save_jsonl(items: Iterable[BaseModel], file_path: Path):
    """按行写出模型"""
    file_path = Path(file_path)
    file_path.parent.mkdir(parents=True, exist_ok=True)
    with open(file_path, 'w', encoding='utf-8') as f:
        for item in items:
            f.write(item.model_dump_json() + '\n')


def build_skill_statistics(jobs: Iterable[JobProfile]) -> Tuple[Dict[str, Dict[str, int]], Dict[str, List[str]]]:
    """
    从岗位技能要求统计技能共现

    Returns:
        (共现计数 skill -> {skill -> 次数}, 岗位技能序列 job_id -> [skill])
    """
    cooccurrences: Dict[str, Dict[str, int]] = {}
    sequences: Dict[str, List[str]] = {}
    for job in jobs:
        names = [s.name for s in job.skills]
        sequences[job.job_id] = names
        for a, b in combinations(dict.fromkeys(names), 2):
            cooccurrences.setdefault(a, {})
            cooccurrences.setdefault(b, {})
            cooccurrences[a][b] = cooccurrences[a].get(b, 0) + 1
            cooccurrences[b][a] = cooccurrences[b].get(a, 0) + 1
    return cooccurrences, sequences
