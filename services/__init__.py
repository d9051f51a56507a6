"""
Domain services for the delivery workflow.
Blueprints call into these; nothing here touches request or session state.
"""
