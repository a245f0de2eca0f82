"""
解释文本生成器
有 API_KEY 时调用 LLM，否则使用确定性的模板文本
"""
import logging
from typing import Tuple

from langchain_core.messages import HumanMessage, SystemMessage
from langchain_openai import ChatOpenAI

from config import API_KEY, BASE_URL, MODEL, TEMPERATURE, ExplanationConfig
from explain.prompts import CAREER_GUIDANCE, EXPLANATION, SKILL_ADVICE

logger = logging.getLogger(__name__)

# (内容, 输入 token 数, 输出 token 数)
Generation = Tuple[str, int, int]


def estimate_tokens(text: str) -> int:
    return len(text.split())


class LLMExplanationGenerator:
    """基于 ChatOpenAI 的解释生成器"""

    def __init__(self, model: str = MODEL, base_url: str = BASE_URL, api_key: str = API_KEY,
                 temperature: float = TEMPERATURE, settings=None):
        self.llm = ChatOpenAI(
            model=model,
            base_url=base_url,
            api_key=api_key,
            temperature=temperature
        )
        self.settings = settings or ExplanationConfig.REQUEST_SETTINGS

    def generate(self, request_type: str, system_prompt: str, human_prompt: str) -> Generation:
        max_tokens, temperature = self.settings[request_type]
        messages = [
            SystemMessage(content=system_prompt),
            HumanMessage(content=human_prompt),
        ]
        logger.info("调用 LLM 生成 %s", request_type)
        response = self.llm.invoke(messages, max_tokens=max_tokens, temperature=temperature)

        content = response.content if isinstance(response.content, str) else str(response.content)
        usage = getattr(response, "usage_metadata", None) or {}
        input_tokens = usage.get("input_tokens") or estimate_tokens(human_prompt)
        output_tokens = usage.get("output_tokens") or estimate_tokens(content)
        return content, input_tokens, output_tokens


class TemplateExplanationGenerator:
    """无 LLM 时的模板生成器，输出只取决于请求类型和提示词"""

    TEMPLATES = {
        EXPLANATION: (
            "该岗位与你的画像较为契合：核心技能要求与你已掌握的技能有明显重合，"
            "经验等级和工作地点也在可接受范围内。建议针对缺失技能做一些补充准备，"
            "以进一步提升竞争力。"
        ),
        SKILL_ADVICE: (
            "技能差距分析：\n\n"
            "高优先级：\n- 岗位必需但尚未掌握的技能（约 1-3 个月）\n\n"
            "中优先级：\n- 熟练度低于要求的技能（约 1-2 个月）\n\n"
            "你现有的技能基础可以较好地迁移，建议先补齐必需技能，再扩展相关方向。"
        ),
        CAREER_GUIDANCE: (
            "职业发展建议：\n\n"
            "1. 深耕当前方向，巩固核心技能\n"
            "2. 向相邻领域拓展，形成复合能力\n"
            "3. 逐步承担技术领导与指导职责\n\n"
            "近期行动：完成一门系统课程，做 2-3 个能展示新技能的项目，积极参与社区交流。\n"
            "时间规划：6-12 个月。"
        ),
    }

    def generate(self, request_type: str, system_prompt: str, human_prompt: str) -> Generation:
        if request_type not in self.TEMPLATES:
            raise ValueError(f"未知的请求类型: {request_type}")
        content = self.TEMPLATES[request_type]
        return content, estimate_tokens(human_prompt), estimate_tokens(content)


def build_generator(api_key: str = API_KEY):
    """根据是否配置了 API_KEY 选择生成器"""
    if api_key:
        return LLMExplanationGenerator(api_key=api_key)
    logger.warning("未配置 API_KEY，使用模板生成解释")
    return TemplateExplanationGenerator()
