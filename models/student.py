from extensions import db

class Student(db.Model):
    __tablename__ = "students"

    student_id = db.Column(db.Integer, primary_key=True)
    register_no = db.Column(db.String(20), unique=True, nullable=False)
    name = db.Column(db.String(100), nullable=False)

    program_id = db.Column(
        db.Integer,
        db.ForeignKey("programs.program_id"),
        nullable=False
    )

    is_active = db.Column(db.Boolean, default=True)

    scores = db.relationship("ScoreRecord", backref="student", lazy=True)

    def __repr__(self):
        return f"<Student {self.register_no}>"
