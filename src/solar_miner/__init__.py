"""Solar Miner: battery-aware control of a Bitcoin miner fleet."""

try:
    from importlib.metadata import version as _pkg_version
    __version__ = _pkg_version("solar-miner")
except Exception:
    __version__ = "dev"
