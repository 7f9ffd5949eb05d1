"""CLI 入口模块 -- python -m syntask.dedup <command> <user_id>

支持的命令：
  detect  对用户执行一次后台重复扫描
  stats   输出用户的去重统计
"""

import asyncio
import sys

from syntask.core.config import get_db_path

_USAGE = """用法: python -m syntask.dedup <command> <user_id>
命令:
  detect  对用户执行一次后台重复扫描
  stats   输出用户的去重统计"""


def main() -> None:
    """CLI 主入口"""
    if len(sys.argv) < 3:
        print(_USAGE)
        sys.exit(1)

    command, user_id = sys.argv[1], sys.argv[2]

    if command == "detect":
        asyncio.run(run_detection(user_id))
    elif command == "stats":
        asyncio.run(show_stats(user_id))
    else:
        print(f"未知命令: {command}")
        print("可用命令: detect, stats")
        sys.exit(1)


async def run_detection(user_id: str) -> None:
    """执行后台扫描并输出计数"""
    from syntask.core.store import create_store_group

    from .config import load_detection_config
    from .detection import DeduplicationService
    from .pipeline import DuplicateDetectionPipeline

    db_path = get_db_path()
    print(f"数据库路径: {db_path}")
    print(f"开始扫描用户 {user_id} ...")

    store_group = await create_store_group(db_path)
    try:
        service = DeduplicationService(store_group, config=load_detection_config())
        stats = await DuplicateDetectionPipeline(service).run_background_duplicate_detection(
            user_id
        )
        print(f"已评分任务对: {stats.processed}")
        print(f"发现重复: {stats.duplicates_found}")
        print(f"自动合并: {stats.auto_merged}")
        print(f"错误: {stats.errors}")
    finally:
        await store_group.conn.close()


async def show_stats(user_id: str) -> None:
    """输出去重统计"""
    from syntask.core.store import create_store_group

    from .detection import DeduplicationService

    store_group = await create_store_group(get_db_path())
    try:
        stats = await DeduplicationService(store_group).get_deduplication_stats(user_id)
        for field, value in stats.model_dump().items():
            print(f"{field}: {value}")
    finally:
        await store_group.conn.close()


if __name__ == "__main__":
    main()
