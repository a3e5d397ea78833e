"""
Client-side story boards: state store, drag-and-drop reconciliation and the
kanban, calendar and backlog projections.
"""
