from postgrestore.db.models.http_session import TABLE_NAME, HttpSession

__all__ = ["HttpSession", "TABLE_NAME"]
