"""
数据模型定义
定义用户画像、岗位画像、匹配结果、模型信息等核心数据结构
"""
from datetime import date, datetime
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field


# =========================
# 用户画像
# =========================
class UserSkill(BaseModel):
    """用户技能"""
    name: str = Field(description="技能名称")
    level: int = Field(default=1, ge=0, le=5, description="熟练度 0-5")
    experience: float = Field(default=0.0, description="使用年限")
    verified: bool = Field(default=False, description="是否已认证")


class Availability(BaseModel):
    """可投入时间"""
    hours_per_week: float = Field(default=0.0, description="每周可投入小时数")
    is_flexible: bool = Field(default=False, description="时间是否灵活")
    timezone: Optional[str] = Field(default=None, description="时区")


class UserProfile(BaseModel):
    """用户画像"""
    user_id: str = Field(description="用户ID")
    skills: List[UserSkill] = Field(default_factory=list, description="技能列表")
    experience_level: Optional[str] = Field(default=None, description="经验等级：Entry/Intermediate/Advanced")
    location: Optional[str] = Field(default=None, description="所在地")
    availability: Availability = Field(default_factory=Availability, description="可投入时间")
    interests: List[str] = Field(default_factory=list, description="兴趣方向")


# =========================
# 岗位画像
# =========================
class RequiredSkill(BaseModel):
    """岗位技能要求"""
    name: str = Field(description="技能名称")
    level: int = Field(default=1, ge=0, le=5, description="要求熟练度 0-5")
    is_required: bool = Field(default=True, description="是否必需")
    importance: float = Field(default=1.0, ge=0.0, le=1.0, description="重要度 0-1")


class JobProfile(BaseModel):
    """岗位画像"""
    job_id: str = Field(description="岗位ID")
    title: str = Field(default="", description="岗位名称")
    skills: List[RequiredSkill] = Field(default_factory=list, description="技能要求")
    experience_level: Optional[str] = Field(default=None, description="经验等级要求")
    location: Optional[str] = Field(default=None, description="工作地点")
    is_remote: bool = Field(default=False, description="是否远程")
    category: Optional[str] = Field(default=None, description="岗位类别")
    duration: float = Field(default=0.0, description="每周所需小时数")


# =========================
# 基础评分结果
# =========================
class SkillGap(BaseModel):
    """技能差距"""
    skill: str = Field(description="技能名称")
    current_level: int = Field(description="当前等级")
    required_level: int = Field(description="要求等级")
    gap: int = Field(description="差距")
    is_required: bool = Field(default=True, description="是否必需")


class MatchScore(BaseModel):
    """规则匹配评分"""
    total_score: float = Field(description="总分 0-1")
    user_to_job_score: float = Field(default=0.0, description="用户->岗位 适配度")
    job_to_user_score: float = Field(default=0.0, description="岗位->用户 适配度")
    breakdown: Dict[str, float] = Field(default_factory=dict, description="各因子得分")
    matched_skills: List[str] = Field(default_factory=list, description="匹配的技能")
    missing_skills: List[str] = Field(default_factory=list, description="缺失的技能")
    skill_gaps: List[SkillGap] = Field(default_factory=list, description="技能差距")
    match_quality: str = Field(default="poor", description="excellent/good/fair/poor/not_viable")
    recommendations: List[str] = Field(default_factory=list, description="建议")


# =========================
# 模型预测与混合结果
# =========================
class ModelPrediction(BaseModel):
    """单个模型的预测输出"""
    model: str = Field(description="模型名称")
    score: float = Field(description="分数 0-1")
    confidence: float = Field(default=0.0, description="置信度 0-1")
    cold_start: bool = Field(default=False, description="是否冷启动默认值")
    match_score: Optional[MatchScore] = Field(default=None, description="基础评分详情（仅 basic）")
    metadata: Dict[str, Any] = Field(default_factory=dict)


class HybridMatchResult(BaseModel):
    """混合匹配结果"""
    user_id: str
    job_id: str
    final_score: float = Field(description="加权后的最终分数")
    confidence: float = Field(description="加权置信度")
    success_probability: float = Field(description="成功概率估计")
    model_scores: Dict[str, float] = Field(default_factory=dict, description="各模型分数")
    model_weights: Dict[str, float] = Field(default_factory=dict, description="实际使用的权重")
    model_used: str = Field(description="hybrid / fallback_basic")
    test_group: str = Field(default="default", description="A/B 组")
    match_quality: Optional[str] = Field(default=None)
    baseline: Optional[MatchScore] = Field(default=None)
    processing_time_ms: float = Field(default=0.0)
    created_at: datetime = Field(default_factory=datetime.now)


class ModelInfo(BaseModel):
    """模型状态信息（只读）"""
    model_id: str
    model_type: str
    version: str
    loaded_at: datetime
    input_shape: List[int] = Field(default_factory=list)
    output_shape: List[int] = Field(default_factory=list)
    parameters: int = 0
    capabilities: List[str] = Field(default_factory=list)
    healthy: bool = True
    metadata: Dict[str, Any] = Field(default_factory=dict)


class ModelPerformance(BaseModel):
    """单个模型的滚动表现"""
    model: str
    average_score: float = 0.0
    average_confidence: float = 0.0
    total_predictions: int = 0
    error_count: int = 0
    contribution_weight: float = 0.0
    average_processing_ms: float = 0.0
    last_updated: Optional[datetime] = None


class PerformanceSnapshot(BaseModel):
    """协调器表现快照"""
    models: Dict[str, ModelPerformance] = Field(default_factory=dict)
    weights: Dict[str, Dict[str, float]] = Field(default_factory=dict)
    fallback_count: int = 0
    total_requests: int = 0
    feedback_count: int = 0


# =========================
# 技能图
# =========================
class SkillRelationship(BaseModel):
    """技能关系"""
    from_skill: str
    to_skill: str
    strength: float
    type: str = Field(description="prerequisite/similar/related/general/indirect")
    distance: int = 1
    confidence: float = 0.0


class SkillPath(BaseModel):
    """学习路径"""
    from_skill: str
    to_skill: str
    path: List[str]
    difficulty: float = 0.0
    estimated_time_hours: int = 0
    prerequisites: List[str] = Field(default_factory=list)


# =========================
# 强化学习
# =========================
class RLPerformanceMetrics(BaseModel):
    """策略引擎表现"""
    average_reward: float = 0.0
    cumulative_reward: float = 0.0
    episode_count: int = 0
    exploration_rate: float = 0.0
    learning_progress: List[float] = Field(default_factory=list)
    successful_actions: int = 0
    total_actions: int = 0
    training_steps: int = 0
    last_training_time: Optional[datetime] = None


# =========================
# 交互数据
# =========================
class InteractionSample(BaseModel):
    """用户-岗位交互样本"""
    user_id: str
    job_id: str
    label: float = Field(ge=0.0, le=1.0, description="交互强度 0-1")
    action: Optional[str] = None


# =========================
# 解释 / 配额
# =========================
class LLMResponse(BaseModel):
    """解释生成结果"""
    content: str
    request_type: str
    tokens_used: int = 0
    cost: float = 0.0
    cached: bool = False
    generated_at: datetime = Field(default_factory=datetime.now)
    metadata: Dict[str, Any] = Field(default_factory=dict)


class CachedResponse(BaseModel):
    """缓存条目"""
    content: str
    tokens_used: int = 0
    cost: float = 0.0
    created_at: datetime
    expires_at: datetime
    metadata: Dict[str, Any] = Field(default_factory=dict)


class UserQuota(BaseModel):
    """用户月度配额"""
    user_id: str
    tier: str = "free"
    monthly_limit: int = 10
    current_usage: int = 0
    explanations_used: int = Field(default=0, description="本月已用解释次数")
    advice_used: int = Field(default=0, description="本月已用建议次数")
    explanations_left: int = 10
    advice_left: int = 0
    last_reset: date = Field(default_factory=date.today)


class UsageStats(BaseModel):
    """用户使用统计"""
    user_id: str
    tier: str
    current_usage: int
    monthly_limit: int
    explanations_left: int
    advice_left: int
    total_cost: float = 0.0
    last_reset: date


class CostMetrics(BaseModel):
    """成本统计"""
    total_cost: float = 0.0
    total_tokens: int = 0
    total_requests: int = 0
    cache_hits: int = 0
    cache_hit_rate: float = 0.0
    cache_size: int = 0
    daily_costs: Dict[str, float] = Field(default_factory=dict)
    user_costs: Dict[str, float] = Field(default_factory=dict)
