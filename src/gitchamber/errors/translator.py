"""Translate git failures to user-friendly messages."""

import re
from dataclasses import dataclass
from typing import List


@dataclass
class UserFriendlyError:
    """User-friendly error representation."""
    original_error: Exception
    title: str
    explanation: str
    actions: List[str]
    show_technical: bool = False


class ErrorTranslator:
    """Translate technical git errors to user-friendly messages."""

    ERROR_PATTERNS = {
        r"not a git repository": {
            "title": "Not a git repository",
            "explanation": "The directory is not inside a git working tree.",
            "actions": [
                "Check the --directory argument",
                "Run 'git init' or clone the repository first",
            ],
        },

        r"Cannot remove the primary workspace": {
            "title": "Primary worktree is protected",
            "explanation": "The original checkout holds the repository metadata and cannot be removed as a worktree.",
            "actions": [
                "Pick one of the linked worktrees from 'gitchamber worktree list'",
            ],
        },

        r"already checked out|already in use by worktree": {
            "title": "Branch is checked out elsewhere",
            "explanation": "Git allows a branch to be checked out in only one worktree at a time.",
            "actions": [
                "Remove the other worktree or switch it to another branch",
                "Create the worktree in 'new' mode with a different branch name",
            ],
        },

        r"unique worktree name": {
            "title": "No free worktree name",
            "explanation": "Every generated candidate name was already taken.",
            "actions": [
                "Pass a different --name",
                "Remove unused worktrees",
            ],
        },

        r"Permission denied \(publickey\)|Authentication failed|could not read Username": {
            "title": "Git authentication failed",
            "explanation": "The remote rejected the credentials. Prompts are disabled, so git cannot ask for a password.",
            "actions": [
                "Check that an SSH agent is running and holds your key (ssh-add -l)",
                "Configure a key for this repository: gitchamber identity set --ssh-key <path>",
                "Use a credential helper for HTTPS remotes",
            ],
        },

        r"Could not resolve host|unable to access|Connection timed out|Connection refused": {
            "title": "Cannot reach remote",
            "explanation": "The remote host could not be contacted. This could be a network issue or a wrong URL.",
            "actions": [
                "Check your internet connection",
                "Verify the remote URL: git remote -v",
            ],
        },

        r"non-fast-forward|fetch first|\[rejected\]": {
            "title": "Push rejected",
            "explanation": "The remote branch has commits that are not in your local branch.",
            "actions": [
                "Pull or rebase onto the remote branch, then push again",
            ],
        },

        r"SSH key path contains invalid characters": {
            "title": "Invalid SSH key path",
            "explanation": "The path contains shell metacharacters and was rejected.",
            "actions": [
                "Rename or move the key to a path without quotes, $, ;, | or similar characters",
            ],
        },
    }

    def translate(self, error: Exception) -> UserFriendlyError:
        """Convert exception to user-friendly format."""
        full_error = f"{type(error).__name__}: {error}"

        for pattern, translation in self.ERROR_PATTERNS.items():
            if re.search(pattern, full_error, re.IGNORECASE):
                return UserFriendlyError(
                    original_error=error,
                    title=translation["title"],
                    explanation=translation["explanation"],
                    actions=translation["actions"],
                    show_technical=False,
                )

        return UserFriendlyError(
            original_error=error,
            title="Git operation failed",
            explanation=str(error),
            actions=[
                "Re-run with --verbose for the full git output",
            ],
            show_technical=True,
        )

    def format_for_cli(self, friendly_error: UserFriendlyError) -> str:
        """Format error for rich console display."""
        output = f"[bold red]{friendly_error.title}[/]\n\n"
        output += f"{friendly_error.explanation}\n\n"

        output += "[bold]How to fix:[/]\n"
        for i, action in enumerate(friendly_error.actions, 1):
            output += f"  {i}. {action}\n"

        if friendly_error.show_technical:
            output += f"\n\n[dim]Technical details:[/]\n[dim]{friendly_error.original_error}[/]"

        return output
