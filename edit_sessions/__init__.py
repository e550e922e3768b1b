"""
Edit sessions - carry uncommitted working-directory edits between machines.

Store captures the changes source control reports in the open workspace
folders; resume matches the stored folders to local ones, checks for
conflicting local edits and applies the changes.
"""

from __future__ import annotations

__version__ = '0.1.0'
