"""Prompt templates for repair sessions."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

SYSTEM_PROMPT = """\
You are an iOS engineer repairing a failing UI test inside an Xcode workspace.
Work only through the provided tools: inspect the workspace, edit files, then
build and run the test to confirm your change.

When you are done and the test passes, reply with a short summary and make no
further tool calls.

If several attempts have failed and you cannot make further progress, stop and
reply in exactly this form, with the location a human should look at first:

GIVING UP: <one-line reason>
File: <absolute path to the file>
Line: <line number>
"""

_SNAPSHOT_ATTACHED = (
    "**Simulator Snapshot:** The latest simulator screenshot, taken when the "
    "test failed, is attached."
)
_SNAPSHOT_MISSING = "**Note:** No simulator snapshot was available for this test."


@dataclass(frozen=True)
class FailingTest:
    """A failing test, addressed by its ``test://`` identifier."""

    test_identifier: str
    test_name: str | None = None

    @property
    def name(self) -> str:
        if self.test_name:
            return self.test_name
        return self.test_identifier.rstrip("/").rsplit("/", 1)[-1]


def _snapshot_note(has_snapshot: bool) -> str:
    return _SNAPSHOT_ATTACHED if has_snapshot else _SNAPSHOT_MISSING


def build_autofix_prompt(
    failing_test: FailingTest,
    test_file_contents: str,
    workspace: Path,
    has_snapshot: bool,
) -> str:
    """Autonomous mode: the test is correct, the app code gets fixed."""
    return f"""\
A UI test in this workspace fails. Fix it automatically using the provided tools.

**Failed Test:** {failing_test.name}
**Test Identifier:** {failing_test.test_identifier}
**Workspace Path:** {workspace}

**Test File Contents:**
```swift
{test_file_contents}
```

{_snapshot_note(has_snapshot)}

THE TEST IS THE SOURCE OF TRUTH
- Do not modify the test code.
- Change the application code until it does what the test expects.

Steps:
1. Use `directory_inspector` to explore the workspace and read the app sources the test touches.
2. Work out what the test expects and what the application is missing or gets wrong.
3. Use `code_editor` to change APPLICATION source files only.
4. Use `test_runner` with operation "build" to check that your changes compile.
5. Use `test_runner` with operation "test" to check that the test passes.
6. If it still fails, read the updated context and try a different approach.

Typical application fixes:
- Add UI elements the test looks for.
- Add accessibility identifiers so the test can find elements.
- Correct labels, text or button titles.
- Fix view hierarchy, visibility or navigation.

Keep changes small and targeted. Call test_runner with this exact identifier:
{failing_test.test_identifier}
"""


def build_analysis_prompt(
    failing_test: FailingTest,
    test_file_contents: str,
    workspace: Path,
    has_snapshot: bool,
) -> str:
    """Standard mode: the app is correct, the test gets adjusted."""
    return f"""\
A UI test in this workspace fails. Find out why and fix the test.

**Failed Test:** {failing_test.name}
**Test Identifier:** {failing_test.test_identifier}
**Workspace Path:** {workspace}

**Test File Contents:**
```swift
{test_file_contents}
```

{_snapshot_note(has_snapshot)}

THE APPLICATION CODE IS CORRECT
- The application behaves as intended.
- The test code is what needs to change.
- Adding accessibility identifiers to the app is allowed when the test cannot locate an element.

Look at the test and the snapshot (if any) and:
1. Identify the most likely cause of the failure.
2. Change the TEST CODE so it passes against the current app.
3. Add accessibility identifiers to the APP CODE only where selectors need them.

Common causes:
- **Element not found**: wrong selector or missing accessibility identifier.
- **Timing**: missing waits or expectations around animations and transitions.
- **Assertion failures**: expectations that do not match the app's actual behavior.

Call test_runner with this exact identifier:
{failing_test.test_identifier}
"""
