from extensions import db

ITEM_TYPES = ("component", "question")


class AssessmentItem(db.Model):
    __tablename__ = "assessment_items"

    item_id = db.Column(db.Integer, primary_key=True)

    course_offering_id = db.Column(
        db.Integer,
        db.ForeignKey("course_offerings.course_offering_id"),
        nullable=False,
        index=True
    )

    name = db.Column(db.String(150), nullable=False)
    item_type = db.Column(db.Enum(*ITEM_TYPES, name="item_type"), nullable=False, default="component")

    # A question belongs to the component it was set in
    parent_item_id = db.Column(
        db.Integer,
        db.ForeignKey("assessment_items.item_id"),
        nullable=True
    )

    total_marks = db.Column(db.Numeric(10, 2), nullable=False)

    allocations = db.relationship("AllocationRow", backref="item", lazy=True)

    def to_dict(self):
        return {
            "item_id": self.item_id,
            "course_offering_id": self.course_offering_id,
            "name": self.name,
            "item_type": self.item_type,
            "parent_item_id": self.parent_item_id,
            "total_marks": float(self.total_marks),
        }

    def __repr__(self):
        return f"<AssessmentItem {self.name}>"
