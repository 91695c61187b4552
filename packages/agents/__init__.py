"""
Tool-using agent for docqa.

This package contains:
- The Tool protocol with Calculator, WebSearch and FunctionTool
- The structured-chat agent prompt
- AgentExecutor, an explicit reason-act loop with an observable trajectory
"""
