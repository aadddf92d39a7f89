from extensions import db

class CourseOffering(db.Model):
    __tablename__ = "course_offerings"

    course_offering_id = db.Column(db.Integer, primary_key=True)
    program_id = db.Column(
        db.Integer,
        db.ForeignKey("programs.program_id"),
        nullable=False
    )
    course_code = db.Column(db.String(20), nullable=False)
    course_name = db.Column(db.String(150), nullable=False)
    # Academic period label used on trend charts, e.g. "2024-Fall"
    period = db.Column(db.String(20), nullable=False)

    items = db.relationship("AssessmentItem", backref="offering", lazy=True)

    __table_args__ = (
        db.UniqueConstraint("program_id", "course_code", "period", name="unique_offering_period"),
    )

    def to_dict(self):
        return {
            "course_offering_id": self.course_offering_id,
            "program_id": self.program_id,
            "course_code": self.course_code,
            "course_name": self.course_name,
            "period": self.period,
        }

    def __repr__(self):
        return f"<CourseOffering {self.course_code} {self.period}>"
