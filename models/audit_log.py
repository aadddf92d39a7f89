from extensions import db

AUDIT_ACTIONS = ("CREATE", "UPDATE", "DELETE", "OVERRIDE", "RECOMPUTE")


class AuditLog(db.Model):
    __tablename__ = "audit_logs"

    audit_id = db.Column(db.Integer, primary_key=True)
    action = db.Column(db.String(20), nullable=False)
    table_name = db.Column(db.String(50), nullable=False)
    record_id = db.Column(db.Integer, nullable=True)
    old_values = db.Column(db.Text, nullable=True)
    new_values = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, server_default=db.func.now())

    def __repr__(self):
        return f"<AuditLog {self.action} {self.table_name}:{self.record_id}>"
