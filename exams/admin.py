from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin
from django.contrib.auth.models import User
from .models import Course, CourseEnrollment, Exam, Question, Option, Result, AuditLog, UserProfile


class UserProfileInline(admin.StackedInline):
    model = UserProfile
    can_delete = False
    verbose_name_plural = 'Profile'


class UserAdmin(BaseUserAdmin):
    inlines = [UserProfileInline]
    list_display = ['username', 'email', 'first_name', 'last_name', 'get_role', 'is_staff']
    list_filter = ['is_staff', 'is_superuser', 'is_active', 'profile__role']

    def get_role(self, obj):
        return obj.profile.get_role_display() if hasattr(obj, 'profile') else '-'
    get_role.short_description = 'Role'


admin.site.unregister(User)
admin.site.register(User, UserAdmin)


class QuestionInline(admin.TabularInline):
    model = Question
    extra = 1
    fields = ['order', 'question_type', 'text', 'marks', 'correct_options']


class OptionInline(admin.TabularInline):
    model = Option
    extra = 2
    fields = ['position', 'text']


class EnrollmentInline(admin.TabularInline):
    model = CourseEnrollment
    extra = 0
    fields = ['student', 'status', 'enrolled_at']
    readonly_fields = ['enrolled_at']


@admin.register(Course)
class CourseAdmin(admin.ModelAdmin):
    list_display = ['name', 'visibility', 'instructor', 'created_at']
    list_filter = ['visibility']
    search_fields = ['name', 'description']
    inlines = [EnrollmentInline]
    ordering = ['name']


@admin.register(Exam)
class ExamAdmin(admin.ModelAdmin):
    list_display = ['title', 'course', 'is_active', 'start_date', 'start_time', 'end_date', 'end_time', 'created_at']
    list_filter = ['is_active', 'course']
    search_fields = ['title', 'description']
    inlines = [QuestionInline]
    readonly_fields = ['created_at', 'updated_at']
    fieldsets = (
        (None, {'fields': ('title', 'description', 'instructions', 'course', 'is_active')}),
        ('Schedule', {'fields': ('start_date', 'start_time', 'end_date', 'end_time', 'duration')}),
        ('Marks', {'fields': ('total_marks',)}),
        ('Metadata', {'fields': ('created_by', 'created_at', 'updated_at'), 'classes': ('collapse',)}),
    )


@admin.register(Question)
class QuestionAdmin(admin.ModelAdmin):
    list_display = ['id', 'exam', 'question_type', 'text_preview', 'marks', 'order']
    list_filter = ['question_type', 'exam']
    search_fields = ['text']
    inlines = [OptionInline]

    def text_preview(self, obj):
        return obj.text[:50] + '...' if len(obj.text) > 50 else obj.text
    text_preview.short_description = 'Question'


@admin.register(Result)
class ResultAdmin(admin.ModelAdmin):
    list_display = ['id', 'user', 'exam', 'score', 'passed', 'time_taken', 'attempted_at']
    list_filter = ['passed', 'exam']
    search_fields = ['user__username', 'exam__title']
    readonly_fields = ['id', 'user', 'exam', 'score', 'passed', 'time_taken', 'attempted_at', 'feedback', 'answers']

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False


@admin.register(AuditLog)
class AuditLogAdmin(admin.ModelAdmin):
    list_display = ['created_at', 'event_type', 'user', 'ip_address', 'description_preview']
    list_filter = ['event_type', 'created_at']
    search_fields = ['user__username', 'description', 'ip_address']
    readonly_fields = ['user', 'event_type', 'description', 'ip_address', 'user_agent', 'metadata', 'created_at']
    ordering = ['-created_at']

    def description_preview(self, obj):
        return obj.description[:50] + '...' if len(obj.description) > 50 else obj.description
    description_preview.short_description = 'Description'

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
