from extensions import db

class AllocationRow(db.Model):
    __tablename__ = "allocation_rows"

    allocation_id = db.Column(db.Integer, primary_key=True)

    item_id = db.Column(
        db.Integer,
        db.ForeignKey("assessment_items.item_id"),
        nullable=False,
        index=True
    )

    clo_id = db.Column(
        db.Integer,
        db.ForeignKey("outcomes.outcome_id"),
        nullable=False,
        index=True
    )

    marks_allocated = db.Column(db.Numeric(10, 2), nullable=False)

    __table_args__ = (
        db.UniqueConstraint("item_id", "clo_id", name="unique_item_clo"),
    )

    def __repr__(self):
        return f"<AllocationRow item={self.item_id} clo={self.clo_id}>"
