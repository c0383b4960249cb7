"""vkvctl - export and import trees of Vault KV v2 secrets.
Vault KV v2 시크릿 트리 내보내기/가져오기 CLI.
"""

__version__ = "0.1.0"
