# create.py: bootstrap an owner account and its organization
from getpass import getpass
from teamhub import create_app
from teamhub.extensions import db
from teamhub.models.organization import Organization, OrganizationMember
from teamhub.models.user import User


def main():
    app = create_app()
    with app.app_context():
        db.create_all()
        email = input("Owner email: ").strip().lower()
        name = input("Full name: ").strip()
        org_name = input("Organization name: ").strip()
        password = getpass("Password: ")

        # Check existing
        if User.query.filter_by(email=email).first():
            print("User with that email already exists.")
            return

        user = User(full_name=name, email=email)
        user.set_password(password)
        org = Organization(name=org_name or f"{name}'s team")
        db.session.add_all([user, org])
        db.session.flush()

        db.session.add(OrganizationMember(organization_id=org.id, user_id=user.id, role="owner"))
        user.active_organization_id = org.id
        db.session.commit()
        print(f"Owner {email} created for organization {org.name!r}.")

if __name__ == "__main__":
    main()
