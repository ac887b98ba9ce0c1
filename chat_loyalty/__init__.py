"""chat-loyalty — Chat loyalty bot for subs, gift subs and cheers."""
from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("chat-loyalty")
except PackageNotFoundError:
    __version__ = "0.0.0"
