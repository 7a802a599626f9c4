from django.test import TestCase

from .models import Role, User


class RolePermissionTest(TestCase):
    def setUp(self):
        self.staff_role = Role.objects.create(name=Role.STAFF, display_name='Staff', is_default=True)
        self.user = User.objects.create_user(username='reception', password='pass12345', role=self.staff_role)

    def test_default_role_receives_permission_map(self):
        self.assertEqual(self.staff_role.permissions, Role.DEFAULT_PERMISSIONS[Role.STAFF])

    def test_explicit_permissions_are_kept(self):
        role = Role.objects.create(name=Role.DENTIST, display_name='Dentist', is_default=True,
                                   permissions={'appointments': True})
        self.assertEqual(role.permissions, {'appointments': True})

    def test_has_permission(self):
        self.assertTrue(self.user.has_permission('billing'))
        self.assertFalse(self.user.has_permission('refunds'))
        self.assertFalse(self.user.has_permission('unknown_module'))

    def test_archived_role_loses_access(self):
        self.staff_role.is_archived = True
        self.staff_role.save()
        self.assertFalse(self.user.has_permission('appointments'))

    def test_superuser_and_roleless_users(self):
        root = User.objects.create_superuser(username='root', password='pass12345')
        nobody = User.objects.create_user(username='nobody', password='pass12345')
        self.assertTrue(root.has_permission('refunds'))
        self.assertFalse(nobody.has_permission('dashboard'))

    def test_only_admin_role_is_protected(self):
        admin = Role.objects.create(name=Role.ADMIN, display_name='Administrator')
        self.assertTrue(admin.is_protected())
        self.assertFalse(self.staff_role.is_protected())


class PractitionerTest(TestCase):
    def setUp(self):
        self.role = Role.objects.create(name=Role.DENTIST, display_name='Dentist', is_default=True)
        self.dentist = User.objects.create_user(username='drlee', first_name='Anna', last_name='Lee',
                                                role=self.role, is_practitioner=True)

    def test_can_practice(self):
        self.assertTrue(self.dentist.can_practice)
        self.assertEqual(self.dentist.full_name, 'Anna Lee')

    def test_inactive_or_archived_cannot_practice(self):
        self.dentist.is_active = False
        self.assertFalse(self.dentist.can_practice)

        self.dentist.is_active = True
        self.role.is_archived = True
        self.assertFalse(self.dentist.can_practice)

    def test_non_practitioner(self):
        staff = User.objects.create_user(username='desk')
        self.assertFalse(staff.can_practice)
        self.assertEqual(staff.full_name, 'desk')
