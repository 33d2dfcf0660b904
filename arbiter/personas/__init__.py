"""
Role prompts for the Manager and the Worker.
"""
