import asyncio
from collections.abc import Awaitable, Callable

from websockets.asyncio.server import ServerConnection, serve
from websockets.exceptions import ConnectionClosed, InvalidMessage

from switchboard.common import get_logger


class WebSocketServer:
  """Wrapper around WebSocket server that handles connection errors gracefully"""

  def __init__(
    self,
    handler: Callable[[ServerConnection], Awaitable[None]],
    host: str,
    port: int,
    **kwargs,
  ):
    self.handler = handler
    self.host = host
    self.port = port
    self.kwargs = kwargs
    self.logger = get_logger("ws/server")

  async def start(self, stop: Awaitable[object] | None = None) -> None:
    """Serve until ``stop`` completes, or forever when no stop signal is given."""
    self.logger.info("Starting WebSocket server", host=self.host, port=self.port)
    async with serve(
      self.error_handling_wrapper,
      self.host,
      self.port,
      **self.kwargs,
    ):
      await (stop if stop is not None else asyncio.get_running_loop().create_future())
    self.logger.info("WebSocket server stopped")

  async def error_handling_wrapper(self, websocket: ServerConnection) -> None:
    """Wrapper that catches and logs connection errors without crashing"""
    addr = websocket.remote_address

    try:
      self.logger.info("Connection begin", address=addr, websocket_id=websocket.id)
      await self.handler(websocket)
    except (EOFError, InvalidMessage):
      self.logger.debug(
        "Connection from failed handshake (likely port scan/health check)",
        websocket_id=websocket.id,
      )
    except ConnectionClosed as e:
      self.logger.debug("Connection closed", error=e, websocket_id=websocket.id)
    except (KeyboardInterrupt, SystemExit):
      raise
    except Exception:
      self.logger.exception("Connection unexpected error", websocket_id=websocket.id)
