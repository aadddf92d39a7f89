from extensions import db

class ScoreRecord(db.Model):
    __tablename__ = "score_records"

    score_id = db.Column(db.Integer, primary_key=True)

    student_id = db.Column(
        db.Integer,
        db.ForeignKey("students.student_id"),
        nullable=False
    )

    item_id = db.Column(
        db.Integer,
        db.ForeignKey("assessment_items.item_id"),
        nullable=False,
        index=True
    )

    obtained_marks = db.Column(db.Numeric(10, 2), nullable=False)

    __table_args__ = (
        db.UniqueConstraint("student_id", "item_id", name="unique_student_item"),
    )

    def __repr__(self):
        return f"<ScoreRecord student={self.student_id} item={self.item_id}>"
