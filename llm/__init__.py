from .main import TaskAiAssistant
