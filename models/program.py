from extensions import db

class Program(db.Model):
    __tablename__ = "programs"

    program_id = db.Column(db.Integer, primary_key=True)
    program_code = db.Column(db.String(20), unique=True, nullable=False)
    program_name = db.Column(db.String(150), nullable=False)

    offerings = db.relationship("CourseOffering", backref="program", lazy=True)
    students = db.relationship("Student", backref="program", lazy=True)

    def to_dict(self):
        return {
            "program_id": self.program_id,
            "program_code": self.program_code,
            "program_name": self.program_name,
        }

    def __repr__(self):
        return f"<Program {self.program_code}>"
