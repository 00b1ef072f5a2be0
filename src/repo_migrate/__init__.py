"""Repository Migration Tool

Moves Bitbucket repositories, their team access and their CircleCI settings
into a GitHub organization by building a migration plan and executing it.
"""

__version__ = '0.1.0'
__author__ = 'Repo Migration Team'
__email__ = 'team@example.com'
