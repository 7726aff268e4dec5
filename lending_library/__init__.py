"""Lending Library - backend package

Modules:
- HTTP entry point (api.py) and action dispatch (dispatcher.py, actions.py)
- Authentication (auth.py)
- Row store over spreadsheet tabs (database.py)
- Records (models.py) and table repositories (repositories/)
- Library facade and bulk title import (library.py)
- Operator CLI (cli.py)
"""

__version__ = "1.0.0"
