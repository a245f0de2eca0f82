"""
基础匹配评分器
规则打分：技能、经验、地点、时间、兴趣等因子，双向适配度取调和平均
"""
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from config import BaselineConfig
from models import JobProfile, MatchScore, ModelInfo, ModelPrediction, SkillGap, UserProfile


class BaselineScorer:
    """规则评分器（无学习状态）"""

    name = "basic"

    def __init__(self, config=BaselineConfig):
        self.config = config
        self._loaded_at = datetime.now()

    def calculate_score(self, user: UserProfile, job: JobProfile) -> MatchScore:
        """
        计算用户与岗位的匹配分

        Args:
            user: 用户画像
            job: 岗位画像

        Returns:
            MatchScore，total_score 在 [0, 1]
        """
        if not self.is_viable(user, job):
            return MatchScore(
                total_score=0.0,
                match_quality="not_viable",
                recommendations=["该岗位的要求与当前画像不匹配"],
            )

        skills = self._check_skills(user, job)
        experience = self._check_experience(user.experience_level, job.experience_level)
        location = self._check_location(user.location, job.location, job.is_remote)
        availability = self._check_availability(user, job)
        learning = self._check_learning_opportunity(user, job)

        interest = self._check_interest(user.interests, job.category)
        time_commitment = availability
        career_fit = (experience + interest) / 2.0

        cfg = self.config
        user_to_job = self._weighted_mean([
            (skills, cfg.SKILLS_WEIGHT),
            (experience, cfg.EXPERIENCE_WEIGHT),
            (location, cfg.LOCATION_WEIGHT),
            (availability, cfg.AVAILABILITY_WEIGHT),
            (learning, cfg.LEARNING_WEIGHT),
        ])
        job_to_user = self._weighted_mean([
            (interest, cfg.INTEREST_WEIGHT),
            (career_fit, cfg.CAREER_FIT_WEIGHT),
            (time_commitment, cfg.TIME_COMMITMENT_WEIGHT),
            (learning, cfg.LEARNING_OPPORTUNITY_WEIGHT),
        ])
        total = harmonic_mean(user_to_job, job_to_user)

        matched, missing, gaps = self._skill_gaps(user, job)
        quality, recommendations = self._insights(total, skills, user, job)

        return MatchScore(
            total_score=total,
            user_to_job_score=user_to_job,
            job_to_user_score=job_to_user,
            breakdown={
                "skills": skills,
                "experience": experience,
                "location": location,
                "availability": availability,
                "interest": interest,
                "learning": learning,
                "time_commitment": time_commitment,
                "career_fit": career_fit,
            },
            matched_skills=matched,
            missing_skills=missing,
            skill_gaps=gaps,
            match_quality=quality,
            recommendations=recommendations,
        )

    def predict(self, user: UserProfile, job: JobProfile) -> ModelPrediction:
        """评分引擎统一接口"""
        match = self.calculate_score(user, job)
        return ModelPrediction(
            model=self.name,
            score=match.total_score,
            confidence=0.7,
            match_score=match,
        )

    def get_model_info(self) -> ModelInfo:
        return ModelInfo(
            model_id="basic_rules",
            model_type="basic",
            version="1.0",
            loaded_at=self._loaded_at,
            capabilities=["rule_based_matching", "skill_gap_analysis"],
            metadata={"required_skill_multiplier": self.config.REQUIRED_SKILL_MULTIPLIER},
        )

    def is_healthy(self) -> bool:
        return True

    # ---------- 可行性 ----------

    def is_viable(self, user: UserProfile, job: JobProfile) -> bool:
        """提前淘汰：无技能、岗位无技能要求、经验等级相差超过一级"""
        if not user.skills or not job.skills:
            return False
        user_level = self._level(user.experience_level)
        job_level = self._level(job.experience_level)
        if user_level is None or job_level is None:
            return True
        return abs(user_level - job_level) <= 1

    def _level(self, level: Optional[str]) -> Optional[int]:
        if not level:
            return None
        return self.config.EXPERIENCE_ORDER.get(level.strip().lower())

    # ---------- 各因子 ----------

    def _check_skills(self, user: UserProfile, job: JobProfile) -> float:
        """按重要度加权的技能命中率，必需技能权重 ×1.5"""
        user_skills = {s.name.lower() for s in user.skills}
        total_weight = 0.0
        matched_weight = 0.0
        for skill in job.skills:
            weight = skill.importance
            if skill.is_required:
                weight *= self.config.REQUIRED_SKILL_MULTIPLIER
            total_weight += weight
            if skill.name.lower() in user_skills:
                matched_weight += weight
        if total_weight == 0:
            return 0.0
        return matched_weight / total_weight

    def _check_experience(self, user_level: Optional[str], job_level: Optional[str]) -> float:
        u = self._level(user_level)
        j = self._level(job_level)
        if u is None or j is None:
            return 0.5
        score = max(0.0, 1.0 - abs(u - j) * 0.3)
        if u > j:
            score = min(score + 0.1, 1.0)
        return score

    def _check_location(self, user_location: Optional[str], job_location: Optional[str], is_remote: bool) -> float:
        if is_remote:
            return 1.0
        if not user_location or not job_location:
            return 0.5
        a = user_location.strip().lower()
        b = job_location.strip().lower()
        if a == b:
            return 1.0
        if self._same_group(a, b, self.config.REGIONS):
            return 0.8
        if self._same_group(a, b, self.config.COUNTRIES):
            return 0.6
        return 0.3

    @staticmethod
    def _same_group(a: str, b: str, groups: Dict[str, List[str]]) -> bool:
        for keywords in groups.values():
            if any(k in a for k in keywords) and any(k in b for k in keywords):
                return True
        return False

    @staticmethod
    def _check_availability(user: UserProfile, job: JobProfile) -> float:
        if job.duration <= 0:
            return 0.5
        if user.availability.is_flexible:
            return 0.9
        hours = user.availability.hours_per_week
        if hours >= job.duration:
            return 1.0
        ratio = hours / job.duration
        if ratio >= 0.8:
            return 0.8
        if ratio >= 0.6:
            return 0.6
        return 0.3

    @staticmethod
    def _check_interest(interests: List[str], category: Optional[str]) -> float:
        if not interests or not category:
            return 0.5
        category = category.lower()
        if any(i.lower() in category for i in interests if i):
            return 1.0
        return 0.3

    @staticmethod
    def _check_learning_opportunity(user: UserProfile, job: JobProfile) -> float:
        """缺失技能比例适中时学习机会最好"""
        if not user.skills or not job.skills:
            return 0.5
        user_skills = {s.name.lower() for s in user.skills}
        missing = sum(1 for s in job.skills if s.name.lower() not in user_skills)
        ratio = missing / len(job.skills)
        if ratio <= 0.3:
            return 0.8
        if ratio <= 0.6:
            return 0.6
        return 0.3

    # ---------- 汇总 ----------

    @staticmethod
    def _weighted_mean(pairs: List[Tuple[float, float]]) -> float:
        total_weight = sum(w for _, w in pairs)
        if total_weight == 0:
            return 0.0
        return sum(s * w for s, w in pairs) / total_weight

    @staticmethod
    def _skill_gaps(user: UserProfile, job: JobProfile) -> Tuple[List[str], List[str], List[SkillGap]]:
        user_skills = {s.name.lower(): s for s in user.skills}
        matched, missing, gaps = [], [], []
        for req in job.skills:
            own = user_skills.get(req.name.lower())
            if own is None:
                missing.append(req.name)
                gaps.append(SkillGap(
                    skill=req.name, current_level=0, required_level=req.level,
                    gap=req.level, is_required=req.is_required,
                ))
                continue
            matched.append(req.name)
            if own.level < req.level:
                gaps.append(SkillGap(
                    skill=req.name, current_level=own.level, required_level=req.level,
                    gap=req.level - own.level, is_required=req.is_required,
                ))
        return matched, missing, gaps

    def _insights(self, total: float, skills: float, user: UserProfile, job: JobProfile) -> Tuple[str, List[str]]:
        if total >= 0.8:
            quality, first = "excellent", "与你的画像高度匹配"
        elif total >= 0.6:
            quality, first = "good", "与你的技能和经验较为匹配"
        elif total >= 0.4:
            quality, first = "fair", "与你的画像部分匹配"
        else:
            quality, first = "poor", "建议优先考虑更适合当前画像的岗位"
        recommendations = [first]

        if skills < 0.5:
            recommendations.append("建议补充该岗位要求的技能")
        if (self._level(user.experience_level) or 0) < (self._level(job.experience_level) or 0):
            recommendations.append("该岗位要求的经验高于当前等级")
        if not job.is_remote and (user.location or "").lower() != (job.location or "").lower():
            recommendations.append("该岗位需要在其他城市现场办公")
        return quality, recommendations


def harmonic_mean(a: float, b: float) -> float:
    """调和平均，任一方为 0 时结果为 0"""
    if a <= 0 or b <= 0:
        return 0.0
    return 2.0 * a * b / (a + b)
