from extensions import db

# Mapping strength as entered on the mapping matrix screens
CORRELATION_WEIGHTS = {"High": 3, "Medium": 2, "Low": 1}


class MappingEdge(db.Model):
    __tablename__ = "mapping_edges"

    edge_id = db.Column(db.Integer, primary_key=True)

    child_id = db.Column(
        db.Integer,
        db.ForeignKey("outcomes.outcome_id"),
        nullable=False,
        index=True
    )

    parent_id = db.Column(
        db.Integer,
        db.ForeignKey("outcomes.outcome_id"),
        nullable=False,
        index=True
    )

    weight = db.Column(db.Numeric(10, 4), nullable=False, default=1)
    correlation_level = db.Column(db.String(10), nullable=True)

    __table_args__ = (
        db.UniqueConstraint("child_id", "parent_id", name="unique_child_parent"),
    )

    def to_dict(self):
        return {
            "edge_id": self.edge_id,
            "child_id": self.child_id,
            "parent_id": self.parent_id,
            "weight": float(self.weight),
            "correlation_level": self.correlation_level,
        }

    def __repr__(self):
        return f"<MappingEdge {self.child_id}->{self.parent_id}>"
