"""
模型检查点管理
负责：NCF / RL 引擎状态保存、加载、元数据与训练报告
"""
import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict

import torch

from config import MODELS_DIR

logger = logging.getLogger(__name__)


class ModelManager:
    """引擎检查点管理器"""

    def __init__(self, model_dir: Path = MODELS_DIR):
        self.model_dir = Path(model_dir)
        self.model_dir.mkdir(parents=True, exist_ok=True)
        self.meta_path = self.model_dir / 'model_meta.json'

    def checkpoint_path(self, name: str) -> Path:
        return self.model_dir / f'{name}.pt'

    def save_engine(self, engine, metrics: Dict[str, Any] = None) -> Path:
        """
        保存引擎状态及元数据

        Args:
            engine: 提供 name / state_dict() / get_model_info() 的引擎
            metrics: 训练指标字典
        """
        path = self.checkpoint_path(engine.name)
        torch.save(engine.state_dict(), path)

        meta = self.load_meta()
        info = engine.get_model_info()
        meta[engine.name] = {
            'timestamp': datetime.now().isoformat(),
            'model_path': str(path),
            'version': info.version,
            'parameters': info.parameters,
            'metrics': metrics or {},
        }
        with self.meta_path.open('w', encoding='utf-8') as f:
            json.dump(meta, f, ensure_ascii=False, indent=2)

        logger.info("模型已保存: %s", path)
        return path

    def load_engine(self, engine) -> bool:
        """从检查点恢复引擎状态，检查点不存在时返回 False"""
        path = self.checkpoint_path(engine.name)
        if not path.exists():
            return False
        # 检查点包含 numpy 数组，需要完整反序列化
        state = torch.load(path, weights_only=False)
        engine.load_state_dict(state)
        logger.info("模型已加载: %s", path)
        return True

    def load_meta(self) -> Dict[str, Any]:
        """加载模型元数据"""
        if not self.meta_path.exists():
            return {}

        with self.meta_path.open('r', encoding='utf-8') as f:
            return json.load(f)

    def model_exists(self, name: str) -> bool:
        return self.checkpoint_path(name).exists()

    def get_model_info(self, name: str) -> Dict[str, Any]:
        """获取已保存模型信息"""
        if not self.model_exists(name):
            return {'exists': False}

        meta = self.load_meta().get(name, {})
        return {
            'exists': True,
            'model_path': str(self.checkpoint_path(name)),
            'timestamp': meta.get('timestamp'),
            'version': meta.get('version'),
            'metrics': meta.get('metrics', {}),
        }

    def export_training_report(self, name: str, output_path: Path = None) -> str:
        """导出训练报告"""
        if output_path is None:
            output_path = self.model_dir / f'{name}_training_report.txt'

        info = self.get_model_info(name)
        if not info['exists']:
            return '模型不存在，无法生成报告'

        lines = []
        lines.append('='*60)
        lines.append(f'{name.upper()} 模型训练报告')
        lines.append('='*60)
        lines.append(f"训练时间: {info.get('timestamp', 'Unknown')}")
        lines.append(f"模型路径: {info.get('model_path', 'Unknown')}")
        lines.append(f"模型版本: {info.get('version', 'Unknown')}")
        lines.append('')

        metrics = info.get('metrics', {})
        if 'data_stats' in metrics:
            stats = metrics['data_stats']
            lines.append('训练数据')
            lines.append('-'*60)
            lines.append(f"  总样本数: {stats.get('total_samples', 0)}")
            lines.append(f"  正样本数: {stats.get('positive_samples', 0)}")
            lines.append(f"  负样本数: {stats.get('negative_samples', 0)}")
            lines.append('')

        history = metrics.get('history', [])
        if history:
            last = history[-1]
            lines.append(f"  最终轮次: {last.get('epoch')}")
            lines.append(f"  训练损失: {last.get('loss', 0):.4f}")
            if 'val_accuracy' in last:
                lines.append(f"  验证准确率: {last['val_accuracy']:.4f}")
            if 'val_auc' in last:
                lines.append(f"  验证 AUC: {last['val_auc']:.4f}")

        lines.append('='*60)

        report = '\n'.join(lines)

        # 保存到文件
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(report, encoding='utf-8')

        return report
