from rest_framework import permissions


class IsInstructorOrAdmin(permissions.BasePermission):
    message = "Only instructors and admins can perform this action."

    def has_permission(self, request, view):
        if request.method in permissions.SAFE_METHODS:
            return True
        return _is_instructor(request.user) or _is_admin(request.user) or request.user.is_staff


class IsExamOwnerOrAdmin(permissions.BasePermission):
    message = "You can only modify exams of courses you teach."

    def has_object_permission(self, request, view, obj):
        if request.method in permissions.SAFE_METHODS:
            return True
        return can_manage_exam(request.user, obj)


class IsResultOwnerOrInstructor(permissions.BasePermission):
    def has_object_permission(self, request, view, obj):
        if obj.user_id == request.user.id:
            return True
        return can_manage_exam(request.user, obj.exam)


def can_manage_exam(user, exam):
    if request_is_admin(user):
        return True
    if not _is_instructor(user):
        return False
    if exam.course_id is not None and exam.course.instructor_id == user.id:
        return True
    return exam.created_by_id == user.id


def request_is_admin(user):
    return user.is_staff or _is_admin(user)


def is_privileged(user):
    return request_is_admin(user) or _is_instructor(user)


def _is_instructor(user):
    return hasattr(user, 'profile') and user.profile.role == 'instructor'


def _is_admin(user):
    return hasattr(user, 'profile') and user.profile.role == 'admin'
