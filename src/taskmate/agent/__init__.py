"""Tool-calling agent: command dispatcher, task commands, sentinel parser, orchestrator."""
