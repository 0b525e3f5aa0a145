import argparse
import asyncio
import os
from pathlib import Path

from dotenv import load_dotenv

from switchboard.common import ConfigurationError, get_logger, setup_logging
from switchboard.server.config import SwitchboardConfig, load_config_from_file


def get_env_or_default(env_var, default, var_type: type = str):
  """Get environment variable with type conversion and default fallback."""
  value = os.getenv(env_var)
  if value is None:
    return default

  if var_type is bool:
    return value.lower() in ("true", "1", "yes", "on")
  elif var_type is int:
    try:
      return int(value)
    except ValueError:
      return default
  else:
    return value


def build_parser() -> argparse.ArgumentParser:
  parser = argparse.ArgumentParser(prog="switchboard", description="Live call transcription relay")
  parser.add_argument(
    "--host",
    type=str,
    default=get_env_or_default("SWITCHBOARD_HOST", "0.0.0.0"),
    help="Interface to bind. (Env: SWITCHBOARD_HOST)",
  )
  parser.add_argument(
    "--port",
    "-p",
    type=int,
    default=get_env_or_default("SWITCHBOARD_PORT", 3000, int),
    help="Websocket port to run the server on. (Env: SWITCHBOARD_PORT)",
  )
  parser.add_argument(
    "--config",
    type=str,
    default=get_env_or_default("SWITCHBOARD_CONFIG", None),
    help="Path to the YAML configuration file. Built-in defaults are used when omitted. "
    "(Env: SWITCHBOARD_CONFIG)",
  )
  parser.add_argument(
    "--json_logs",
    action="store_true",
    default=get_env_or_default("JSON_LOGS", False, bool),
    help="Output logs in JSON format. (Env: JSON_LOGS)",
  )
  parser.add_argument(
    "--correlation_id",
    type=str,
    default=get_env_or_default("CORRELATION_ID", None),
    help="Correlation ID for log tracing. (Env: CORRELATION_ID)",
  )
  return parser


async def main(argv: list[str] | None = None) -> None:
  # API keys usually live in .env next to the deployment
  load_dotenv()
  args = build_parser().parse_args(argv)

  log_level = os.getenv("LOG_LEVEL", "INFO").upper()
  setup_logging(level=log_level, json_output=args.json_logs, correlation_id=args.correlation_id)
  logger = get_logger("main")

  try:
    config = load_config_from_file(Path(args.config)) if args.config else SwitchboardConfig()
  except (ConfigurationError, ValueError) as e:
    logger.error("Configuration validation failed", error=str(e), config_path=args.config)
    raise SystemExit(2) from e

  logger.info(
    "Starting Switchboard server", host=args.host, port=args.port, config_path=args.config
  )

  from switchboard.server.server import RelayServer

  server = RelayServer(config)
  await server.run(args.host, args.port)


def run() -> None:
  try:
    asyncio.run(main())
  except KeyboardInterrupt:
    pass


if __name__ == "__main__":
  run()
