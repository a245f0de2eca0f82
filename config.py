"""
配置管理模块
加载和管理环境变量、模型超参数、LLM 配置等
"""
import logging
import os
from pathlib import Path
from dotenv import load_dotenv

# 加载 .env 文件
load_dotenv()

# =========================
# API 配置（解释生成使用）
# =========================
MODEL = os.environ.get("MODEL", "deepseek-chat")
BASE_URL = os.environ.get("BASE_URL", "https://api.deepseek.com/v1")
# 为安全起见，不在代码中设置默认密钥，请通过环境变量或 .env 文件提供
API_KEY = os.environ.get("API_KEY", "")
TEMPERATURE = float(os.environ.get("TEMPERATURE", "0"))

# =========================
# 文件路径配置
# =========================
BASE_DIR = Path(__file__).parent
DATA_DIR = BASE_DIR / "data"
MODELS_DIR = Path(os.environ.get("MODELS_DIR", str(BASE_DIR / "checkpoints")))

USERS_FILE = DATA_DIR / "users.jsonl"
JOBS_FILE = DATA_DIR / "jobs.jsonl"
INTERACTIONS_FILE = DATA_DIR / "interactions.jsonl"

# 全局随机种子（各引擎通过构造参数接收自己的 RNG）
RANDOM_SEED = int(os.environ.get("RANDOM_SEED", "42"))


# =========================
# 基础评分器配置
# =========================
class BaselineConfig:
    """规则匹配权重配置"""
    # 用户 -> 岗位 方向
    SKILLS_WEIGHT = 0.35
    EXPERIENCE_WEIGHT = 0.25
    LOCATION_WEIGHT = 0.20
    AVAILABILITY_WEIGHT = 0.15
    LEARNING_WEIGHT = 0.05

    # 岗位 -> 用户 方向
    INTEREST_WEIGHT = 0.40
    CAREER_FIT_WEIGHT = 0.30
    TIME_COMMITMENT_WEIGHT = 0.20
    LEARNING_OPPORTUNITY_WEIGHT = 0.10

    REQUIRED_SKILL_MULTIPLIER = 1.5

    # 经验等级映射
    EXPERIENCE_ORDER = {"entry": 1, "intermediate": 2, "advanced": 3}

    # 同区域 / 同国家判定关键词
    REGIONS = {
        "bay_area": ["san francisco", "oakland", "san jose", "palo alto", "berkeley"],
        "new_york": ["new york", "brooklyn", "queens", "jersey city"],
        "london": ["london", "croydon", "greenwich"],
        "hong_kong": ["hong kong", "kowloon", "new territories"],
        "yangtze_delta": ["上海", "杭州", "苏州", "南京"],
        "pearl_delta": ["深圳", "广州", "东莞", "珠海"],
    }
    COUNTRIES = {
        "us": ["usa", "united states", "california", "new york", "texas", "washington"],
        "hk": ["hong kong", "kowloon", "new territories"],
        "uk": ["uk", "united kingdom", "england", "london"],
        "cn": ["china", "中国", "上海", "北京", "深圳", "广州", "杭州"],
    }


# =========================
# NCF 配置
# =========================
class NCFConfig:
    """协同过滤嵌入引擎配置"""
    EMBEDDING_DIM = int(os.environ.get("NCF_EMBEDDING_DIM", "32"))
    HIDDEN_LAYERS = [64, 32]
    LEARNING_RATE = float(os.environ.get("NCF_LEARNING_RATE", "0.01"))
    REGULARIZATION = 0.001
    GMF_RATIO = 0.5  # GMF 与 MLP 混合比例
    COLD_START_SCORE = 0.5
    COLD_START_CONFIDENCE = 0.1

    # 批量拟合
    EPOCHS = 10
    BATCH_SIZE = 64
    VALIDATION_SPLIT = 0.2
    EARLY_STOPPING_PATIENCE = 3


# =========================
# 技能图配置
# =========================
class GNNConfig:
    """技能图引擎配置"""
    EMBEDDING_DIM = int(os.environ.get("GNN_EMBEDDING_DIM", "32"))
    AGGREGATION = os.environ.get("GNN_AGGREGATION", "mean")  # mean / max / attention
    MIN_COOCCURRENCE = 2
    COOCCURRENCE_NORMALIZER = 10.0
    PREREQUISITE_WEIGHT = 0.7
    PREREQUISITE_POSITION_GAP = 0.5
    PREREQUISITE_MIN_FREQUENCY = 0.3
    SECOND_DEGREE_DECAY = 0.8
    SELF_RATIO = 0.7  # 消息传递时保留自身嵌入的比例
    HOURS_PER_SKILL = 20
    DEFAULT_MAX_DEPTH = 5
    NEUTRAL_SCORE = 0.5
    NEUTRAL_CONFIDENCE = 0.2

    CATEGORY_KEYWORDS = {
        "programming": ["python", "java", "javascript", "go", "rust", "c++", "programming"],
        "web_development": ["html", "css", "react", "vue", "angular", "web", "frontend", "backend"],
        "data_science": ["sql", "database", "analytics", "machine learning", "data"],
    }


# =========================
# 强化学习配置
# =========================
class RLConfig:
    """策略引擎配置"""
    STATE_DIM = 45
    USER_FEATURES = 20
    JOB_FEATURES = 15
    CONTEXT_FEATURES = 10
    HIDDEN_LAYERS = [256, 128, 64]
    ACTIONS = ["recommend_high", "recommend_medium", "recommend_low", "no_recommend", "request_feedback"]
    ACTION_MULTIPLIERS = [1.0, 0.7, 0.3, 0.0, 0.5]

    LEARNING_RATE = float(os.environ.get("RL_LEARNING_RATE", "0.001"))
    DISCOUNT_FACTOR = 0.95
    EPSILON = float(os.environ.get("RL_EPSILON", "0.1"))
    EPSILON_DECAY = 0.995
    EPSILON_MIN = 0.01
    TARGET_UPDATE_FREQ = 100
    MEMORY_SIZE = 10000
    BATCH_SIZE = 32
    RANDOM_ACTION_CONFIDENCE = 0.5

    # 行为 -> 奖励倍数
    REWARD_MULTIPLIERS = {"hired": 5.0, "applied": 2.0, "viewed": 0.5}
    FIXED_REWARDS = {"dismissed": -0.1, "ignored": -0.1, "not_interested": -0.2}
    ACTION_ALIASES = {
        "hire": "hired", "apply": "applied", "view": "viewed",
        "dismiss": "dismissed", "ignore": "ignored", "not-interested": "not_interested",
    }


# =========================
# 集成协调器配置
# =========================
class EnsembleConfig:
    """混合匹配配置"""
    MODELS = ["basic", "ncf", "gnn", "rl"]
    DEFAULT_WEIGHTS = {"basic": 0.15, "ncf": 0.35, "gnn": 0.25, "rl": 0.25}
    CONFIDENCE_THRESHOLD = float(os.environ.get("CONFIDENCE_THRESHOLD", "0.3"))
    FALLBACK_CONFIDENCE = 0.3
    CANDIDATE_MULTIPLIER = 3
    ADAPTIVE_LEARNING = True
    ADAPTIVE_LEARNING_RATE = 0.01
    PERFORMANCE_ALPHA = 0.1

    # 权重调整边界
    RL_WEIGHT_CAP = 0.5
    GNN_WEIGHT_CAP = 0.4
    NCF_WEIGHT_FLOOR = 0.1
    POSITIVE_OUTCOME = 0.7
    NEGATIVE_OUTCOME = 0.3

    EXCELLENT_BONUS = 1.1


class ABTestConfig:
    """A/B 实验配置"""
    ENABLED = os.environ.get("AB_TEST_ENABLED", "true").lower() == "true"
    TRAFFIC_SPLIT = 0.5  # control 组流量占比
    START_DATE = None  # 为 None 表示不限制
    END_DATE = None
    WEIGHT_SETS = {
        "control": {"basic": 0.15, "ncf": 0.35, "gnn": 0.25, "rl": 0.25},
        "treatment": {"basic": 0.10, "ncf": 0.25, "gnn": 0.20, "rl": 0.45},
    }


# =========================
# 解释生成 / 配额配置
# =========================
class ExplanationConfig:
    """解释缓存与配额配置"""
    CACHE_TTL_HOURS = 24
    CACHE_MAX_SIZE = 10000
    SWEEP_INTERVAL_SECONDS = 3600
    COST_RETENTION_DAYS = 30
    COST_PER_INPUT_TOKEN = 0.0001
    COST_PER_OUTPUT_TOKEN = 0.0002

    # -1 表示不限
    TIER_LIMITS = {
        "free": {"explanations": 10, "advice": 0},
        "pro": {"explanations": -1, "advice": -1},
        "enterprise": {"explanations": -1, "advice": -1},
    }

    # 请求类型 -> (max_tokens, temperature)
    REQUEST_SETTINGS = {
        "explanation": (300, 0.3),
        "skill_advice": (500, 0.4),
        "career_guidance": (600, 0.5),
    }


# 默认推荐数量
DEFAULT_RECOMMENDATION_COUNT = 10

# =========================
# 日志配置
# =========================
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
LOG_FILE = BASE_DIR / "matcher.log"


def setup_logging(level: str = LOG_LEVEL, log_file: Path = LOG_FILE):
    """配置根日志：控制台 + 文件"""
    handlers = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=handlers,
    )
