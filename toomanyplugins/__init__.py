"""Too Many Plugins - index plugin archives and deploy them to Minecraft servers."""

from toomanyplugins.__version__ import __version__
