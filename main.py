"""
混合岗位匹配引擎 命令行入口
"""
import argparse
import logging
import sys

from config import (
    DEFAULT_RECOMMENDATION_COUNT, INTERACTIONS_FILE, JOBS_FILE, LOG_LEVEL, MODELS_DIR, USERS_FILE, setup_logging,
)
from data_preprocess import InMemoryRepository, ProfileLoader, build_skill_statistics
from exceptions import MatchingError
from explain import ExplanationService
from search import BaselineScorer, HybridMatcher
from similarity.graph import SkillGraphEngine
from training.model_manager import ModelManager
from training.ncf import EmbeddingInteractionEngine
from training.policy import PolicyEngine
from training.training_utils import calculate_data_stats, print_training_summary

logger = logging.getLogger(__name__)


def initialize_system(args) -> HybridMatcher:
    """加载数据、构建各引擎并组装协调器"""
    print("\n" + "="*80)
    print("混合岗位匹配引擎初始化")
    print("="*80)

    # 1. 加载画像
    print("\n[1/4] 加载用户与岗位数据...")
    users = ProfileLoader(args.users).load_users()
    jobs = ProfileLoader(args.jobs).load_jobs()
    print(f"[OK] {len(users)} 个用户, {len(jobs)} 个岗位")
    baseline = BaselineScorer()
    repository = InMemoryRepository(users, jobs, candidate_filter=baseline.is_viable)

    # 2. 技能图
    print("\n[2/4] 构建技能图...")
    graph = SkillGraphEngine()
    cooccurrences, sequences = build_skill_statistics(jobs)
    graph.build_skill_graph(cooccurrences, sequences)
    graph.propagate_message(iterations=args.propagation)
    print(f"[OK] 技能图: {graph.graph.number_of_nodes()} 个技能, {graph.graph.number_of_edges()} 条边")

    # 3. 嵌入与策略引擎
    print("\n[3/4] 加载嵌入与策略模型...")
    manager = ModelManager(args.models_dir)
    ncf = EmbeddingInteractionEngine()
    ncf.initialize_embeddings([u.user_id for u in users], [j.job_id for j in jobs])
    policy = PolicyEngine()
    for engine in (ncf, policy):
        if manager.load_engine(engine):
            print(f"[OK] 已加载 {engine.name} 检查点")
        else:
            print(f"  - {engine.name} 无检查点，使用初始参数")

    # 4. 协调器
    print("\n[4/4] 初始化协调器...")
    matcher = HybridMatcher(
        repository=repository,
        candidate_supplier=repository,
        engines=[baseline, ncf, graph, policy],
        explanation_service=ExplanationService(),
    )
    print("\n[OK] 系统初始化完成")
    return matcher


def cmd_match(matcher: HybridMatcher, args):
    results = matcher.find_best_matches_with_timeout(args.user, args.limit, args.timeout)
    print("\n" + "="*80)
    print(f"用户 {args.user} 的推荐岗位")
    print("="*80)
    if not results:
        print("没有找到合适的岗位")
        return
    for i, r in enumerate(results, 1):
        scores = ", ".join(f"{m}={s:.2f}" for m, s in r.model_scores.items())
        print(f"{i:2d}. {r.job_id}  分数 {r.final_score:.3f}  置信度 {r.confidence:.2f}  "
              f"成功率 {r.success_probability:.2f}  [{r.model_used}/{r.test_group}]")
        print(f"    {scores}")


def cmd_feedback(matcher: HybridMatcher, args):
    matcher.process_user_feedback(args.user, args.job, args.action, args.outcome)
    group, weights = matcher.get_weights_for_user(args.user)
    print(f"[OK] 反馈已记录 ({group} 组)")
    print("  当前权重: " + ", ".join(f"{m}={w:.3f}" for m, w in weights.items()))


def cmd_explain(matcher: HybridMatcher, args):
    if args.type == "career":
        response = matcher.get_career_advice(args.user, args.goals or "", args.tier)
    elif args.type == "gap":
        response = matcher.get_skill_gap_analysis(args.user, args.job, args.tier)
    else:
        response = matcher.get_match_explanation(args.user, args.job, args.tier)
    print("\n" + "="*80)
    print(response.content)
    print("="*80)
    print(f"tokens={response.tokens_used}  cost={response.cost:.4f}  cached={response.cached}")


def cmd_path(matcher: HybridMatcher, args):
    graph: SkillGraphEngine = matcher.engines["gnn"]
    path = graph.get_skill_learning_path(args.source, args.target, args.max_depth)
    print(" -> ".join(path.path))
    print(f"难度 {path.difficulty:.2f}, 预计 {path.estimated_time_hours} 小时")
    for rel in graph.get_related_skills(args.target, top_k=5):
        print(f"  相关: {rel.to_skill} ({rel.type}, {rel.strength:.2f})")


def cmd_train(matcher: HybridMatcher, args):
    """用交互数据拟合 NCF、回放策略反馈，并保存检查点"""
    samples = ProfileLoader(args.interactions).load_interactions()
    if not samples:
        print("没有交互数据")
        return
    ncf: EmbeddingInteractionEngine = matcher.engines["ncf"]
    policy: PolicyEngine = matcher.engines["rl"]

    history = ncf.train_model(samples, epochs=args.epochs)
    data_stats = calculate_data_stats([s.label for s in samples])
    print_training_summary(data_stats, history)

    for s in samples:
        if s.action:
            user, job = matcher.repository.get_user(s.user_id), matcher.repository.get_job(s.job_id)
            policy.process_user_feedback(user, job, s.action, s.label)
    print(f"[OK] 策略引擎训练步数: {policy.training_steps}")

    manager = ModelManager(args.models_dir)
    manager.save_engine(ncf, {"data_stats": data_stats, "history": history})
    manager.save_engine(policy, policy.get_performance_metrics().model_dump(mode="json"))
    print(manager.export_training_report("ncf"))


def cmd_health(matcher: HybridMatcher, args):
    status = matcher.health_check()
    for name, info in status["models"].items():
        mark = "OK" if info["healthy"] else "!!"
        print(f"[{mark}] {name}  {info.get('version', info.get('error', ''))}")
    snapshot = matcher.get_model_performance_metrics()
    print(f"请求 {snapshot.total_requests}, 回退 {snapshot.fallback_count}, 反馈 {snapshot.feedback_count}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='混合岗位匹配引擎')
    parser.add_argument('--users', default=str(USERS_FILE), help='用户画像文件')
    parser.add_argument('--jobs', default=str(JOBS_FILE), help='岗位画像文件')
    parser.add_argument('--models-dir', default=str(MODELS_DIR), help='检查点目录')
    parser.add_argument('--propagation', type=int, default=1, help='技能图消息传递轮数')
    parser.add_argument('--log-level', default=None, help='日志级别')
    sub = parser.add_subparsers(dest='command', required=True)

    p = sub.add_parser('match', help='推荐岗位')
    p.add_argument('--user', required=True)
    p.add_argument('--limit', type=int, default=DEFAULT_RECOMMENDATION_COUNT)
    p.add_argument('--timeout', type=float, default=10.0)
    p.set_defaults(func=cmd_match)

    p = sub.add_parser('feedback', help='记录用户反馈')
    p.add_argument('--user', required=True)
    p.add_argument('--job', required=True)
    p.add_argument('--action', required=True, help='applied/hired/viewed/dismissed/...')
    p.add_argument('--outcome', type=float, required=True, help='结果强度 0-1')
    p.set_defaults(func=cmd_feedback)

    p = sub.add_parser('explain', help='生成匹配解释 / 技能差距 / 职业建议')
    p.add_argument('--user', required=True)
    p.add_argument('--job')
    p.add_argument('--type', choices=['match', 'gap', 'career'], default='match')
    p.add_argument('--goals', help='职业目标（career 类型）')
    p.add_argument('--tier', choices=['free', 'pro', 'enterprise'])
    p.set_defaults(func=cmd_explain)

    p = sub.add_parser('path', help='技能学习路径')
    p.add_argument('source')
    p.add_argument('target')
    p.add_argument('--max-depth', type=int, default=None)
    p.set_defaults(func=cmd_path)

    p = sub.add_parser('train', help='用交互数据训练并保存模型')
    p.add_argument('--interactions', default=str(INTERACTIONS_FILE))
    p.add_argument('--epochs', type=int, default=None)
    p.set_defaults(func=cmd_train)

    p = sub.add_parser('health', help='模型健康检查')
    p.set_defaults(func=cmd_health)
    return parser


def main(argv=None):
    """主函数"""
    args = build_parser().parse_args(argv)
    if args.command == "explain" and args.type != 'career' and not args.job:
        print("错误: 需要 --job")
        return 2
    setup_logging(args.log_level or LOG_LEVEL)

    matcher = None
    try:
        matcher = initialize_system(args)
        args.func(matcher, args)
    except KeyboardInterrupt:
        print("\n\n[系统] 用户中断")
    except (MatchingError, ValueError, KeyError) as e:
        print(f"\n[错误] {e}")
        return 1
    finally:
        if matcher is not None:
            matcher.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
