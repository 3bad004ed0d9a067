"""Tool registry and execution engine for external AI coding CLIs.

Each supported tool (claude-code, codex, gemini, aider, or a generic command
declared in configuration) is wrapped by an adapter that knows how to probe
the executable and turn an execution context into a command line. The
registry probes adapters concurrently and picks the best available one for a
task type; the process engine supervises exactly one child process at a time
with streaming callbacks, a hard timeout and cooperative cancellation.

Availability is never cached: tools come and go as users install them.
"""
