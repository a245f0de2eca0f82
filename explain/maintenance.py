"""
后台维护任务
定期清理过期缓存、滚动每日成本（APScheduler 后台调度）
"""
import logging

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from config import ExplanationConfig

logger = logging.getLogger(__name__)

DAY_SECONDS = 24 * 3600


class MaintenanceScheduler:
    """缓存清理与成本滚动的后台调度器"""

    def __init__(self, service, sweep_interval: float = ExplanationConfig.SWEEP_INTERVAL_SECONDS,
                 rollover_interval: float = DAY_SECONDS):
        self.service = service
        self.sweep_interval = sweep_interval
        self.rollover_interval = rollover_interval
        self.scheduler = None

    def run_once(self, rollover: bool = False):
        """执行一次清理；rollover=True 时同时滚动成本"""
        removed = self.service.cache.sweep_expired()
        dropped = self.service.costs.rollover() if rollover else 0
        logger.debug("维护完成: 清理缓存 %d 条, 丢弃成本 %d 天", removed, dropped)
        return removed, dropped

    def _sweep(self):
        try:
            self.run_once()
        except Exception:
            logger.exception("缓存清理失败")

    def _rollover(self):
        try:
            dropped = self.service.costs.rollover()
            logger.debug("成本滚动完成: 丢弃 %d 天", dropped)
        except Exception:
            logger.exception("成本滚动失败")

    def start(self):
        if self.running:
            return
        self.scheduler = BackgroundScheduler(daemon=True)
        self.scheduler.add_job(
            self._sweep,
            trigger=IntervalTrigger(seconds=self.sweep_interval),
            id="cache_sweep",
            name="清理过期解释缓存",
            replace_existing=True,
            max_instances=1,
        )
        self.scheduler.add_job(
            self._rollover,
            trigger=IntervalTrigger(seconds=self.rollover_interval),
            id="cost_rollover",
            name="滚动每日成本",
            replace_existing=True,
            max_instances=1,
        )
        self.scheduler.start()
        logger.info("后台维护已启动 (清理间隔 %ss, 成本滚动间隔 %ss)", self.sweep_interval, self.rollover_interval)

    def stop(self, wait: bool = True):
        if self.scheduler is not None and self.scheduler.running:
            self.scheduler.shutdown(wait=wait)
            logger.info("后台维护已停止")
        self.scheduler = None

    def get_status(self):
        """已调度任务及下次运行时间"""
        if self.scheduler is None:
            return []
        return [
            {
                "id": job.id,
                "name": job.name,
                "next_run": job.next_run_time.isoformat() if job.next_run_time else None,
                "trigger": str(job.trigger),
            }
            for job in self.scheduler.get_jobs()
        ]

    @property
    def running(self) -> bool:
        return self.scheduler is not None and self.scheduler.running
