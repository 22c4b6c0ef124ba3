# devlog/models/user.py

from flask_login import UserMixin
from devlog import db, login_manager


class User(UserMixin, db.Model):
    __tablename__ = "user"

    id       = db.Column(db.Integer, primary_key=True)
    email    = db.Column(db.String(150), unique=True, nullable=False)
    password = db.Column(db.String(256), nullable=False)

    # Los proyectos y diarios no cuelgan de aquí: viven en el store de
    # documentos bajo users/{id}/...

    def to_dict(self) -> dict:
        return {"id": str(self.id), "email": self.email}

    def __repr__(self) -> str:
        return f"<User {self.id} {self.email}>"


# Loader para Flask-Login
@login_manager.user_loader
def load_user(user_id):
    return db.session.get(User, int(user_id))
