from sqladmin import ModelView
from univendor.db.models.user import User
from univendor.db.models.session import UserSession
from univendor.db.models.vendor import Vendor
from univendor.db.models.product import Product, ProductReview
from univendor.db.models.conversation import Conversation, UserConversation
from univendor.db.models.message import Message
from univendor.db.models.security_log import SecurityLog

class UserAdmin(ModelView, model=User):
    column_list = [User.id, User.email, User.first_name, User.last_name, User.role, User.is_active, User.created_at]
    column_searchable_list = [User.email, User.first_name, User.last_name]
    column_details_exclude_list = [User.password_hash, User.two_factor_secret, User.two_factor_temp_secret, User.two_factor_backup_codes, User.email_verification_code]
    form_excluded_columns = [User.password_hash, User.two_factor_secret, User.two_factor_temp_secret, User.two_factor_backup_codes, User.email_verification_code, User.email_verification_expires, User.sessions]
    icon = "fa-solid fa-user"

class SessionAdmin(ModelView, model=UserSession):
    name = "Session"
    column_list = [UserSession.id, UserSession.user_id, UserSession.ip_address, UserSession.last_active, UserSession.expires_at]
    column_details_exclude_list = [UserSession.token]
    can_create = False
    can_edit = False
    icon = "fa-solid fa-key"

class VendorAdmin(ModelView, model=Vendor):
    column_list = [Vendor.id, Vendor.user_id, Vendor.business_name, Vendor.location, Vendor.created_at]
    column_searchable_list = [Vendor.business_name, Vendor.location]
    icon = "fa-solid fa-store"

class ProductAdmin(ModelView, model=Product):
    column_list = [Product.id, Product.vendor_id, Product.name, Product.price, Product.category, Product.created_at]
    column_searchable_list = [Product.name]
    column_sortable_list = [Product.created_at, Product.price]
    icon = "fa-solid fa-box"

class ProductReviewAdmin(ModelView, model=ProductReview):
    column_list = [ProductReview.id, ProductReview.product_id, ProductReview.user_id, ProductReview.rating, ProductReview.created_at]
    icon = "fa-solid fa-star"

class ConversationAdmin(ModelView, model=Conversation):
    column_list = [Conversation.id, Conversation.user_id, Conversation.vendor_id, Conversation.last_message, Conversation.updated_at]
    column_sortable_list = [Conversation.updated_at]
    can_create = False
    icon = "fa-solid fa-comments"

class UserConversationAdmin(ModelView, model=UserConversation):
    column_list = [UserConversation.id, UserConversation.user1_id, UserConversation.user2_id, UserConversation.last_message, UserConversation.updated_at]
    can_create = False
    icon = "fa-solid fa-user-group"

class MessageAdmin(ModelView, model=Message):
    column_list = [Message.id, Message.conversation_type, Message.conversation_id, Message.sender_id, Message.status, Message.created_at]
    column_sortable_list = [Message.created_at]
    can_create = False
    icon = "fa-solid fa-envelope"

class SecurityLogAdmin(ModelView, model=SecurityLog):
    column_list = [SecurityLog.id, SecurityLog.user_id, SecurityLog.event_type, SecurityLog.ip_address, SecurityLog.created_at]
    column_searchable_list = [SecurityLog.event_type]
    column_sortable_list = [SecurityLog.created_at]
    can_create = False
    can_edit = False
    can_delete = False
    icon = "fa-solid fa-shield-halved"

ADMIN_VIEWS = [
    UserAdmin,
    SessionAdmin,
    VendorAdmin,
    ProductAdmin,
    ProductReviewAdmin,
    ConversationAdmin,
    UserConversationAdmin,
    MessageAdmin,
    SecurityLogAdmin,
]
