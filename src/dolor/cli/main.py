"""
CLI 命令接口
"""

import argparse
import logging
import sys

import uvicorn
import yaml

from ..infra.config import DEFAULT_CONFIG_PATH, get_default_config, load_config, save_config

logger = logging.getLogger(__name__)


def _configure_logging(level_name: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level_name.upper(), logging.INFO),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
    )


def cmd_serve(args):
    """启动 Web 服务 (SSE chat + Telegram webhook)"""
    config = load_config(args.config)
    log_level = args.log_level or (config.get("logging", {}) or {}).get("level") or "INFO"
    _configure_logging(log_level)

    from ..web.app import build_app

    try:
        app = build_app(config)
    except (ValueError, TypeError, ImportError) as e:
        logger.error("Failed to start Dolor: %s", e)
        sys.exit(1)

    logger.info("Serving Dolor on %s:%s", args.host, args.port)
    uvicorn.run(app, host=args.host, port=args.port, log_level=log_level.lower())


def cmd_config(args):
    """配置管理"""
    if args.show:
        config = load_config(args.config)
        print(yaml.dump(config, default_flow_style=False, allow_unicode=True))
    elif args.init:
        config = get_default_config()
        save_config(config, args.config)
        print(f"Config initialised: {args.config or DEFAULT_CONFIG_PATH}")
    else:
        print("Use --show to print the config, --init to write the defaults")


def main(argv=None):
    """CLI 主入口"""
    parser = argparse.ArgumentParser(
        description="Dolor - conversational coaching backend",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    # 全局参数
    parser.add_argument("--config", type=str, help="配置文件路径")
    parser.add_argument("--log-level", type=str,
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
                        help="日志级别")

    subparsers = parser.add_subparsers(dest="command", help="子命令")

    # serve 命令
    parser_serve = subparsers.add_parser("serve", help="启动 Web 服务")
    parser_serve.add_argument("--host", default="127.0.0.1", help="监听地址")
    parser_serve.add_argument("--port", type=int, default=8000, help="监听端口")
    parser_serve.set_defaults(func=cmd_serve)

    # config 命令
    parser_config = subparsers.add_parser("config", help="配置管理")
    parser_config.add_argument("--show", action="store_true", help="显示当前配置")
    parser_config.add_argument("--init", action="store_true", help="初始化默认配置")
    parser_config.set_defaults(func=cmd_config)

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return

    # 执行命令
    if hasattr(args, "func"):
        args.func(args)
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
