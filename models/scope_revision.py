from extensions import db

class ScopeRevision(db.Model):
    __tablename__ = "scope_revisions"

    id = db.Column(db.Integer, primary_key=True)
    # "offering:<id>" or "program:<id>"
    scope_key = db.Column(db.String(40), unique=True, nullable=False)
    revision = db.Column(db.Integer, nullable=False, default=0)
    updated_at = db.Column(
        db.DateTime,
        server_default=db.func.now(),
        onupdate=db.func.now()
    )
