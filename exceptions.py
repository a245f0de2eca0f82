"""
异常定义
匹配引擎各层抛出的错误类型
"""


class MatchingError(Exception):
    """匹配引擎基础异常"""


class EmbeddingNotFoundError(MatchingError, KeyError):
    """用户或岗位嵌入不存在（需先初始化或训练）"""

    def __init__(self, entity: str, entity_id: str):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} 嵌入不存在: {entity_id}")

    def __str__(self):
        return self.args[0]


class SkillNotFoundError(MatchingError, KeyError):
    """技能不在技能图中"""

    def __init__(self, skill: str):
        self.skill = skill
        super().__init__(f"技能不在图中: {skill}")

    def __str__(self):
        return self.args[0]


class NoLearningPathError(MatchingError):
    """两个技能之间没有可达的学习路径"""

    def __init__(self, from_skill: str, to_skill: str, max_depth: int):
        self.from_skill = from_skill
        self.to_skill = to_skill
        self.max_depth = max_depth
        super().__init__(f"找不到学习路径: {from_skill} -> {to_skill} (max_depth={max_depth})")


class ModelUnavailableError(MatchingError):
    """模型未就绪或内部状态异常"""

    def __init__(self, model: str, reason: str):
        self.model = model
        self.reason = reason
        super().__init__(f"模型 {model} 不可用: {reason}")


class CandidateSupplyError(MatchingError):
    """候选岗位或用户画像获取失败，整个请求失败"""


class InsufficientExperienceError(MatchingError):
    """经验回放数据不足，无法训练"""

    def __init__(self, have: int, need: int):
        self.have = have
        self.need = need
        super().__init__(f"经验不足，无法训练: 已有 {have}，需要 {need}")


class MatchTimeoutError(MatchingError):
    """调用方等待超时（后台计算仍会完成）"""


class QuotaExceededError(MatchingError):
    """本月解释额度已用完"""

    def __init__(self, user_id: str, request_type: str, limit: int):
        self.user_id = user_id
        self.request_type = request_type
        self.limit = limit
        super().__init__(f"用户 {user_id} 本月 {request_type} 额度已用完 (上限 {limit})，请升级套餐或等待下月重置")


class TierRestrictedError(MatchingError):
    """当前套餐不支持该请求类型"""

    def __init__(self, user_id: str, tier: str, request_type: str):
        self.user_id = user_id
        self.tier = tier
        self.request_type = request_type
        super().__init__(f"{tier} 套餐不支持 {request_type}，请升级到 pro 或 enterprise")
