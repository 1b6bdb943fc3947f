from django.db import transaction


def generate_member_number(model):
    """Next sequential member number: M0001, M0002, ..."""
    with transaction.atomic():
        sequence = model.objects.count() + 1
        member_no = f"M{sequence:04d}"
        while model.objects.filter(member_no=member_no).exists():
            sequence += 1
            member_no = f"M{sequence:04d}"
    return member_no
