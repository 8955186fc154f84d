import pytest

from app.storage_paths import StorageObject, group_by_bucket, parse_public_url


BASE = "https://proj.supabase.co/storage/v1/object/public"


def test_parse_public_url_splits_bucket_and_nested_path():
    parsed = parse_public_url(f"{BASE}/tcpublic/tribe-covers/2024/abc.jpg")
    assert parsed == StorageObject(bucket="tcpublic", object_path="tribe-covers/2024/abc.jpg")


def test_parse_public_url_is_stable_across_calls():
    url = f"{BASE}/events/event-banners/def.jpg"
    assert parse_public_url(url) == parse_public_url(url)


def test_parse_public_url_ignores_query_string_and_decodes_path():
    parsed = parse_public_url(f"{BASE}/events/event-banners/my%20banner.png?t=123")
    assert parsed == StorageObject(bucket="events", object_path="event-banners/my banner.png")


def test_parse_public_url_decodes_encoded_slashes_into_the_key():
    parsed = parse_public_url(f"{BASE}/tcpublic/a%2Fb%20c.jpg")
    assert parsed == StorageObject(bucket="tcpublic", object_path="a/b c.jpg")


@pytest.mark.parametrize(
    "url",
    [
        None,
        "",
        "not a url",
        "https://images.unsplash.com/photo-1517694712202-14dd9538aa97?w=800",
        "https://proj.supabase.co/storage/v1/object/sign/tcpublic/abc.jpg",
        f"{BASE}/",
        f"{BASE}/tcpublic",
        f"{BASE}/tcpublic/",
        f"{BASE}//abc.jpg",
        "/storage/v1/object/public/tcpublic/abc.jpg",
        "http://[::1/storage/v1/object/public/tcpublic/abc.jpg",
    ],
)
def test_parse_public_url_returns_none_without_raising(url):
    assert parse_public_url(url) is None


def test_group_by_bucket_keeps_order_within_bucket():
    objects = [
        StorageObject("a", "1.jpg"),
        StorageObject("b", "2.jpg"),
        StorageObject("a", "3.jpg"),
    ]
    assert group_by_bucket(objects) == {"a": ["1.jpg", "3.jpg"], "b": ["2.jpg"]}
