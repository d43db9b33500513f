"""
Entry point for running vault_agent as a module.

Allows running the CLI via:
    python -m vault_agent status
"""

from vault_agent.cli import main

if __name__ == "__main__":
    main()
