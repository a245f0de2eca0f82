"""
解释生成提示词模板
"""
from typing import Dict

from models import JobProfile, MatchScore, UserProfile

EXPLANATION = "explanation"
SKILL_ADVICE = "skill_advice"
CAREER_GUIDANCE = "career_guidance"

REQUEST_TYPES = (EXPLANATION, SKILL_ADVICE, CAREER_GUIDANCE)

SYSTEM_PROMPTS = {
    EXPLANATION: (
        "你是一名职业顾问，负责解释某个岗位为什么适合该用户。"
        "\n请围绕技能匹配、经验契合度和成长空间给出简洁、个性化的说明。"
        "\n控制在 200 字以内，语气积极，但要如实指出差距。"
    ),
    SKILL_ADVICE: (
        "你是技能发展专家，负责分析用户现有技能与目标岗位要求之间的差距。"
        "\n请给出具体可执行的学习建议和预计时间，按重要度和学习难度排序。"
        "\n以结构化计划的形式输出，并给出明确的下一步。"
    ),
    CAREER_GUIDANCE: (
        "你是资深职业规划师，熟悉多个行业。"
        "\n请根据用户的背景、技能和目标给出职业发展建议，包括行业趋势、可选路径、"
        "人脉拓展建议和技能发展优先级。建议要具体、可执行。"
    ),
}


def _skill_list(skills) -> str:
    return "、".join(f"{s.name}(L{s.level})" for s in skills) or "无"


def match_explanation_prompt(user: UserProfile, job: JobProfile, match: MatchScore) -> str:
    return f"""请解释为什么该岗位与用户的匹配度为 {match.total_score * 100:.1f}%：

用户画像：
- 技能：{_skill_list(user.skills)}
- 经验等级：{user.experience_level or '未知'}
- 兴趣方向：{'、'.join(user.interests) or '无'}
- 所在地：{user.location or '未知'}

岗位信息：
- 岗位名称：{job.title}
- 技能要求：{_skill_list(job.skills)}
- 经验要求：{job.experience_level or '不限'}
- 工作地点：{'远程' if job.is_remote else (job.location or '未知')}
- 岗位类别：{job.category or '未知'}

匹配分析：
- 已匹配技能：{'、'.join(match.matched_skills) or '无'}
- 缺失技能：{'、'.join(match.missing_skills) or '无'}
- 匹配质量：{match.match_quality}

请简要说明优势，并指出需要弥补的差距。"""


def skill_gap_prompt(user: UserProfile, job: JobProfile) -> str:
    return f"""请分析以下求职转换中的技能差距：

当前画像：
- 技能：{_skill_list(user.skills)}
- 经验等级：{user.experience_level or '未知'}

目标岗位：
- 岗位名称：{job.title}
- 技能要求：{_skill_list(job.skills)}
- 经验要求：{job.experience_level or '不限'}
- 岗位类别：{job.category or '未知'}

请给出：
1. 需要优先提升的技能（高 / 中 / 低优先级）
2. 每项技能的预计学习时间
3. 推荐的学习资源或方法
4. 可以从现有背景迁移的技能
5. 达到岗位要求的时间规划"""


def career_advice_prompt(user: UserProfile, career_goals: str) -> str:
    return f"""请为这位用户提供职业发展建议：

背景：
- 当前技能：{_skill_list(user.skills)}
- 经验等级：{user.experience_level or '未知'}
- 兴趣方向：{'、'.join(user.interests) or '无'}
- 所在地：{user.location or '未知'}
- 职业目标：{career_goals}

请包括：
1. 基于现有技能的职业路径选择
2. 行业趋势与机会
3. 技能发展优先级
4. 人脉拓展策略
5. 接下来的具体行动
6. 实现目标的时间规划"""


def build_messages(request_type: str, human_prompt: str) -> Dict[str, str]:
    """返回 {'system': ..., 'human': ...}"""
    if request_type not in SYSTEM_PROMPTS:
        raise ValueError(f"未知的请求类型: {request_type}")
    return {"system": SYSTEM_PROMPTS[request_type], "human": human_prompt}
