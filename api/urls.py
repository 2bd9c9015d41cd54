from django.urls import path
from .views import (
    ProfileView, DonorRegisterView, DonorEligibilityView, DonorSearchView, DonationHistoryView,
    FCMTokenView, NotificationPermissionView,
    BloodRequestView, RespondRequestView, CancelRequestView, ArchiveRequestView,
    FulfilRequestsView, BroadcastView,
    AppointmentView, CancelAppointmentView, NoShowView, CompleteAppointmentView,
    CertificateView, VenueListView,
    InventoryListView, InventoryDetailView, StockAdjustView, WatchlistView, WatchlistEntryView,
    CampView,
)

urlpatterns = [
    # Profiles & donors
    path('profile/', ProfileView.as_view(), name='profile'),
    path('donors/register/', DonorRegisterView.as_view(), name='donor-register'),
    path('donors/eligibility/', DonorEligibilityView.as_view(), name='donor-eligibility'),
    path('donors/search/', DonorSearchView.as_view(), name='donor-search'),
    path('donors/<str:user_id>/history/', DonationHistoryView.as_view(), name='donor-history'),
    path('fcm/token/', FCMTokenView.as_view(), name='save-fcm-token'),
    path('notifications/permission/', NotificationPermissionView.as_view(), name='notification-permission'),

    # Blood requests
    path('requests/', BloodRequestView.as_view(), name='blood-requests'),
    path('requests/fulfilled/', FulfilRequestsView.as_view(), name='requests-fulfilled'),
    path('requests/broadcast/', BroadcastView.as_view(), name='requests-broadcast'),
    path('requests/<str:request_id>/respond/', RespondRequestView.as_view(), name='request-respond'),
    path('requests/<str:request_id>/cancel/', CancelRequestView.as_view(), name='request-cancel'),
    path('requests/<str:request_id>/archive/', ArchiveRequestView.as_view(), name='request-archive'),

    # Appointments & donations
    path('appointments/', AppointmentView.as_view(), name='appointments'),
    path('appointments/<str:appointment_id>/cancel/', CancelAppointmentView.as_view(), name='appointment-cancel'),
    path('appointments/<str:appointment_id>/no-show/', NoShowView.as_view(), name='appointment-no-show'),
    path('appointments/<str:appointment_id>/complete/', CompleteAppointmentView.as_view(),
         name='appointment-complete'),
    path('certificates/', CertificateView.as_view(), name='certificates'),
    path('venues/', VenueListView.as_view(), name='venues'),

    # Inventory & watchlist
    path('inventory/', InventoryListView.as_view(), name='inventory'),
    path('inventory/<str:hospital_id>/', InventoryDetailView.as_view(), name='inventory-detail'),
    path('inventory/<str:hospital_id>/stock/', StockAdjustView.as_view(), name='inventory-stock'),
    path('watchlist/', WatchlistView.as_view(), name='watchlist'),
    path('watchlist/<str:entry_id>/', WatchlistEntryView.as_view(), name='watchlist-entry'),

    # Camps
    path('camps/', CampView.as_view(), name='camps'),
]
