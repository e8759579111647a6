"""yamlsp – YAML document and schema engine with a Language Server front end."""
from importlib.metadata import version, PackageNotFoundError

try:
    __version__ = version('yamlsp')
except PackageNotFoundError:
    __version__ = '0.0.0.dev0'
