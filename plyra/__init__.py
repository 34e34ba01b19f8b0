# "plyra" is a shared namespace: plyra-rollback installs plyra.rollback next
# to whatever other plyra-* distributions are present.
from pkgutil import extend_path

__path__ = extend_path(__path__, __name__)
