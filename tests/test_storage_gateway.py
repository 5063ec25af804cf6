"""Unit tests for storage_gateway.py against a mocked boto3 S3 client"""

# pylint: disable=redefined-outer-name

from datetime import datetime, timezone
from unittest import mock

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

from manifest_log import ManifestEntry
from metadata_snapshot import CorsConfig, LoggingConfig, WebsiteConfig
from relocate_errors import ErrorKind, GatewayError
from relocate_types import ObjectDescriptor, VersioningState
from storage_gateway import S3Gateway, classify_client_error, group_versions_oldest_first
from tests.assertions import assert_equal


JAN_1 = datetime(2024, 1, 1, tzinfo=timezone.utc)
JAN_2 = datetime(2024, 1, 2, tzinfo=timezone.utc)


def _client_error(code, operation="Operation"):
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


def _paginator(pages):
    paginator = mock.Mock()
    paginator.paginate.return_value = pages
    return paginator


@pytest.fixture
def s3():
    """Mocked S3 client."""
    return mock.Mock()


@pytest.fixture
def s3_gateway(s3):
    """S3Gateway over the mocked client."""
    return S3Gateway(s3, max_workers=2)


@pytest.mark.parametrize(
    "code, kind",
    [
        ("BucketNotEmpty", ErrorKind.NOT_EMPTY),
        ("NoSuchBucket", ErrorKind.NOT_FOUND),
        ("404", ErrorKind.NOT_FOUND),
        ("AccessDenied", ErrorKind.ACCESS_DENIED),
        ("403", ErrorKind.ACCESS_DENIED),
        ("BucketAlreadyOwnedByYou", ErrorKind.ALREADY_EXISTS),
        ("InternalError", ErrorKind.OTHER),
    ],
)
def test_classify_client_error(code, kind):
    """Service error codes map onto ErrorKind."""
    assert_equal(classify_client_error(_client_error(code)), kind)


class TestBuckets:
    """Test bucket-level operations."""

    def test_exists_true(self, s3, s3_gateway):
        """HeadBucket success means the bucket exists."""
        assert s3_gateway.exists("demo")
        s3.head_bucket.assert_called_once_with(Bucket="demo")

    def test_exists_false_on_not_found(self, s3, s3_gateway):
        """A 404 means the bucket does not exist."""
        s3.head_bucket.side_effect = _client_error("404", "HeadBucket")

        assert not s3_gateway.exists("demo")

    def test_exists_true_when_owned_elsewhere(self, s3, s3_gateway):
        """A 403 means the name is taken."""
        s3.head_bucket.side_effect = _client_error("403", "HeadBucket")

        assert s3_gateway.exists("demo")

    def test_exists_propagates_other_errors(self, s3, s3_gateway):
        """Unexpected failures surface as GatewayError."""
        s3.head_bucket.side_effect = EndpointConnectionError(endpoint_url="https://s3.amazonaws.com")

        with pytest.raises(GatewayError) as exc_info:
            s3_gateway.exists("demo")

        assert_equal(exc_info.value.kind, ErrorKind.OTHER)

    def test_create_bucket_us_east_1(self, s3, s3_gateway):
        """us-east-1 takes no location constraint."""
        s3_gateway.create_bucket("demo", "us-east-1")

        s3.create_bucket.assert_called_once_with(Bucket="demo")

    def test_create_bucket_other_region(self, s3, s3_gateway):
        """Other regions are passed as the location constraint."""
        s3_gateway.create_bucket("demo", "eu-west-1")

        s3.create_bucket.assert_called_once_with(
            Bucket="demo", CreateBucketConfiguration={"LocationConstraint": "eu-west-1"}
        )

    def test_create_bucket_with_object_ownership(self, s3, s3_gateway):
        """The ObjectOwnership setting is passed at creation."""
        s3_gateway.create_bucket("demo", "eu-west-1", "ObjectWriter")

        s3.create_bucket.assert_called_once_with(
            Bucket="demo",
            CreateBucketConfiguration={"LocationConstraint": "eu-west-1"},
            ObjectOwnership="ObjectWriter",
        )

    def test_object_ownership_read(self, s3, s3_gateway):
        """The first ownership rule is the bucket's setting."""
        s3.get_bucket_ownership_controls.return_value = {
            "OwnershipControls": {"Rules": [{"ObjectOwnership": "BucketOwnerPreferred"}]}
        }

        assert_equal(s3_gateway.get_object_ownership("demo"), "BucketOwnerPreferred")

    def test_object_ownership_without_controls(self, s3, s3_gateway):
        """A bucket without ownership controls honours ACLs like ObjectWriter."""
        s3.get_bucket_ownership_controls.side_effect = _client_error("OwnershipControlsNotFoundError")

        assert_equal(s3_gateway.get_object_ownership("demo"), "ObjectWriter")

    def test_object_ownership_denied(self, s3, s3_gateway):
        """A denied ownership read is not mistaken for a legacy bucket."""
        s3.get_bucket_ownership_controls.side_effect = _client_error("AccessDenied")

        with pytest.raises(GatewayError) as exc_info:
            s3_gateway.get_object_ownership("demo")

        assert_equal(exc_info.value.kind, ErrorKind.ACCESS_DENIED)

    def test_delete_bucket_not_empty(self, s3, s3_gateway):
        """BucketNotEmpty is reported with ErrorKind.NOT_EMPTY."""
        s3.delete_bucket.side_effect = _client_error("BucketNotEmpty", "DeleteBucket")

        with pytest.raises(GatewayError) as exc_info:
            s3_gateway.delete_bucket("demo")

        assert_equal(exc_info.value.kind, ErrorKind.NOT_EMPTY)
        assert_equal(exc_info.value.target, "demo")

    @pytest.mark.parametrize(
        "status, expected",
        [("Enabled", VersioningState.ENABLED), ("Suspended", VersioningState.DISABLED), (None, VersioningState.DISABLED)],
    )
    def test_get_versioning_state(self, s3, s3_gateway, status, expected):
        """Only Status=Enabled counts as versioned."""
        s3.get_bucket_versioning.return_value = {"Status": status} if status else {}

        assert_equal(s3_gateway.get_versioning_state("demo"), expected)

    def test_set_versioning_state(self, s3, s3_gateway):
        """ENABLED becomes Status=Enabled."""
        s3_gateway.set_versioning_state("demo", VersioningState.ENABLED)

        s3.put_bucket_versioning.assert_called_once_with(
            Bucket="demo", VersioningConfiguration={"Status": "Enabled"}
        )


class TestConfiguration:
    """Test bucket configuration reads and writes."""

    def test_website_absent(self, s3, s3_gateway):
        """No website configuration reads as an empty WebsiteConfig."""
        s3.get_bucket_website.side_effect = _client_error("NoSuchWebsiteConfiguration")

        assert not s3_gateway.get_website_config("demo").is_configured()

    def test_website_present(self, s3, s3_gateway):
        """Index suffix and error key are read."""
        s3.get_bucket_website.return_value = {
            "IndexDocument": {"Suffix": "index.html"},
            "ErrorDocument": {"Key": "404.html"},
        }

        assert_equal(
            s3_gateway.get_website_config("demo"),
            WebsiteConfig(main_page_suffix="index.html", not_found_page="404.html"),
        )

    def test_set_website_only_sends_present_fields(self, s3, s3_gateway):
        """An error page alone is sent without an index document."""
        s3_gateway.set_website_config("demo", WebsiteConfig(not_found_page="404.html"))

        s3.put_bucket_website.assert_called_once_with(
            Bucket="demo", WebsiteConfiguration={"ErrorDocument": {"Key": "404.html"}}
        )

    def test_website_redirect_read(self, s3, s3_gateway):
        """A redirect-all website counts as configured."""
        redirect = {"HostName": "example.com", "Protocol": "https"}
        s3.get_bucket_website.return_value = {"RedirectAllRequestsTo": redirect}

        website = s3_gateway.get_website_config("demo")

        assert website.is_configured()
        assert_equal(website.redirect_all_requests_to, redirect)

    def test_set_website_redirect_is_sent_alone(self, s3, s3_gateway):
        """A redirect-all configuration carries no documents."""
        redirect = {"HostName": "example.com"}
        s3_gateway.set_website_config(
            "demo", WebsiteConfig(main_page_suffix="index.html", redirect_all_requests_to=redirect)
        )

        s3.put_bucket_website.assert_called_once_with(
            Bucket="demo", WebsiteConfiguration={"RedirectAllRequestsTo": redirect}
        )

    def test_website_routing_rules_round_trip(self, s3, s3_gateway):
        """Routing rules read from a bucket are written back with its documents."""
        rules = [{"Condition": {"KeyPrefixEquals": "old/"}, "Redirect": {"ReplaceKeyPrefixWith": "new/"}}]
        s3.get_bucket_website.return_value = {"IndexDocument": {"Suffix": "index.html"}, "RoutingRules": rules}

        s3_gateway.set_website_config("copy", s3_gateway.get_website_config("demo"))

        s3.put_bucket_website.assert_called_once_with(
            Bucket="copy",
            WebsiteConfiguration={"IndexDocument": {"Suffix": "index.html"}, "RoutingRules": rules},
        )

    def test_cors_absent(self, s3, s3_gateway):
        """No CORS configuration reads as no rules."""
        s3.get_bucket_cors.side_effect = _client_error("NoSuchCORSConfiguration")

        assert_equal(s3_gateway.get_cors("demo"), CorsConfig())

    def test_cors_other_error_propagates(self, s3, s3_gateway):
        """A denied CORS read is not mistaken for an empty configuration."""
        s3.get_bucket_cors.side_effect = _client_error("AccessDenied")

        with pytest.raises(GatewayError) as exc_info:
            s3_gateway.get_cors("demo")

        assert_equal(exc_info.value.kind, ErrorKind.ACCESS_DENIED)

    def test_logging_disabled(self, s3, s3_gateway):
        """A bucket without LoggingEnabled has no logging configuration."""
        s3.get_bucket_logging.return_value = {}

        assert_equal(s3_gateway.get_logging_config("demo"), LoggingConfig())

    def test_logging_enabled(self, s3, s3_gateway):
        """Target bucket and prefix are read."""
        s3.get_bucket_logging.return_value = {"LoggingEnabled": {"TargetBucket": "logs", "TargetPrefix": "demo/"}}

        assert_equal(s3_gateway.get_logging_config("demo"), LoggingConfig("logs", "demo/"))


class TestObjects:
    """Test object listing, deletion and the read check."""

    def test_list_current_objects(self, s3, s3_gateway):
        """list_objects_v2 pages become descriptors without versions."""
        s3.get_paginator.return_value = _paginator(
            [{"Contents": [{"Key": "a", "Size": 3, "ETag": '"abc"'}]}, {"Contents": [{"Key": "b", "Size": 1}]}]
        )

        descriptors = list(s3_gateway.list_objects("demo"))

        s3.get_paginator.assert_called_once_with("list_objects_v2")
        assert_equal([d.key for d in descriptors], ["a", "b"])
        assert_equal(descriptors[0].etag, "abc")
        assert descriptors[0].version_id is None

    def test_list_all_versions(self, s3, s3_gateway):
        """Versions are listed, delete markers are not."""
        s3.get_paginator.return_value = _paginator(
            [
                {
                    "Versions": [{"Key": "a", "VersionId": "2", "IsLatest": True}, {"Key": "a", "VersionId": "1"}],
                    "DeleteMarkers": [{"Key": "b", "VersionId": "9"}],
                }
            ]
        )

        descriptors = list(s3_gateway.list_objects("demo", all_versions=True))

        assert_equal([d.version_id for d in descriptors], ["2", "1"])

    def test_check_object_readable_denied(self, s3, s3_gateway):
        """A denied HEAD marks the object unreadable."""
        s3.head_object.side_effect = _client_error("403", "HeadObject")

        assert not s3_gateway.check_object_readable("demo", ObjectDescriptor(key="a"))

    def test_check_object_readable_acl_denied(self, s3, s3_gateway):
        """A denied ACL read also marks the object unreadable."""
        s3.get_object_acl.side_effect = _client_error("AccessDenied", "GetObjectAcl")

        assert not s3_gateway.check_object_readable("demo", ObjectDescriptor(key="a", version_id="v1"))
        s3.head_object.assert_called_once_with(Bucket="demo", Key="a", VersionId="v1")

    def test_delete_object_all_versions(self, s3, s3_gateway):
        """Every version and delete marker of the key is removed."""
        s3.get_paginator.return_value = _paginator(
            [
                {
                    "Versions": [{"Key": "probe", "VersionId": "1"}, {"Key": "probe-other", "VersionId": "2"}],
                    "DeleteMarkers": [{"Key": "probe", "VersionId": "3"}],
                }
            ]
        )
        s3.delete_objects.return_value = {}

        assert_equal(s3_gateway.delete_object("demo", "probe"), 2)
        s3.delete_objects.assert_called_once_with(
            Bucket="demo",
            Delete={
                "Objects": [{"Key": "probe", "VersionId": "1"}, {"Key": "probe", "VersionId": "3"}],
                "Quiet": True,
            },
        )

    def test_delete_objects_removes_versions_and_uploads(self, s3, s3_gateway, capsys):
        """Purging deletes every version and aborts pending multipart uploads."""
        version_pages = _paginator([{"Versions": [{"Key": "a", "VersionId": "1"}], "DeleteMarkers": []}])
        upload_pages = _paginator([{"Uploads": [{"Key": "big", "UploadId": "u1"}]}])
        s3.get_paginator.side_effect = lambda name: {
            "list_object_versions": version_pages,
            "list_multipart_uploads": upload_pages,
        }[name]
        s3.delete_objects.return_value = {}

        assert_equal(s3_gateway.delete_objects("demo"), 1)
        s3.abort_multipart_upload.assert_called_once_with(Bucket="demo", Key="big", UploadId="u1")
        assert "Deleted 1 objects/versions" in capsys.readouterr().out

    def test_delete_objects_reports_partial_failure(self, s3, s3_gateway):
        """Per-object errors in a DeleteObjects response fail the purge."""
        s3.get_paginator.return_value = _paginator([{"Versions": [{"Key": "a", "VersionId": "1"}]}])
        s3.delete_objects.return_value = {
            "Errors": [{"Key": "a", "VersionId": "1", "Code": "AccessDenied", "Message": "denied"}]
        }

        with pytest.raises(GatewayError) as exc_info:
            s3_gateway.delete_objects("demo")

        assert_equal(exc_info.value.kind, ErrorKind.ACCESS_DENIED)
        assert "Key=a" in str(exc_info.value)


class TestCopyObjects:
    """Test server-side bulk copies."""

    def test_group_versions_oldest_first(self):
        """Each key's versions are reversed; key order is kept."""
        listing = [
            ObjectDescriptor("a", version_id="a3"),
            ObjectDescriptor("a", version_id="a2"),
            ObjectDescriptor("a", version_id="a1"),
            ObjectDescriptor("b", version_id="b2"),
            ObjectDescriptor("b", version_id="b1"),
        ]

        ordered = list(group_versions_oldest_first(listing))

        assert_equal([d.version_id for d in ordered], ["a1", "a2", "a3", "b1", "b2"])

    def test_group_versions_merges_delete_markers_by_time(self):
        """Delete markers are placed among a key's versions by modification time."""
        listing = [
            ObjectDescriptor("b", version_id="b2", last_modified=datetime(2024, 1, 3, tzinfo=timezone.utc)),
            ObjectDescriptor("b", version_id="b1", last_modified=datetime(2024, 1, 1, tzinfo=timezone.utc)),
            ObjectDescriptor(
                "b",
                version_id="m1",
                last_modified=datetime(2024, 1, 2, tzinfo=timezone.utc),
                is_delete_marker=True,
            ),
        ]

        ordered = list(group_versions_oldest_first(listing))

        assert_equal([d.version_id for d in ordered], ["b1", "m1", "b2"])

    def test_ordered_copy_replays_delete_markers(self, s3, s3_gateway, manifest):
        """A key whose latest entry is a delete marker ends up deleted in the destination."""
        s3.get_paginator.return_value = _paginator(
            [
                {
                    "Versions": [
                        {"Key": "a", "VersionId": "a1", "Size": 1, "IsLatest": True, "LastModified": JAN_1},
                        {"Key": "b", "VersionId": "b1", "Size": 2, "IsLatest": False, "LastModified": JAN_1},
                    ],
                    "DeleteMarkers": [{"Key": "b", "VersionId": "m1", "IsLatest": True, "LastModified": JAN_2}],
                }
            ]
        )
        s3.head_object.return_value = {"Metadata": {}}
        s3.get_object_acl.return_value = {"Owner": {"ID": "o"}, "Grants": []}

        summary = s3_gateway.copy_objects("demo", "demo-relocate", "STANDARD", ordered=True, manifest=manifest)

        assert_equal((summary.copied, summary.delete_markers, summary.bytes_copied), (2, 1, 3))
        writes = [(name, call_args) for name, call_args, _ in s3.method_calls if name in ("copy", "delete_object")]
        assert_equal([name for name, _ in writes], ["copy", "copy", "delete_object"])
        assert_equal(writes[1][1][0], {"Bucket": "demo", "Key": "b", "VersionId": "b1"})
        s3.delete_object.assert_called_once_with(Bucket="demo-relocate", Key="b")
        s3.get_paginator.return_value.paginate.assert_called_once_with(Bucket="demo")
        assert manifest.is_copied("s3://demo/b#m1")
        assert ",delete marker" in manifest.path.read_text()

    def test_resumed_copy_skips_replayed_delete_marker(self, s3, s3_gateway, manifest):
        """A delete marker already in the manifest is not replayed twice."""
        manifest.record(
            ManifestEntry(source="s3://demo/b#m1", destination="s3://demo-relocate/b", start="s", end="e")
        )
        s3.get_paginator.return_value = _paginator(
            [{"DeleteMarkers": [{"Key": "b", "VersionId": "m1", "IsLatest": True, "LastModified": JAN_2}]}]
        )

        summary = s3_gateway.copy_objects("demo", "demo-relocate", "STANDARD", ordered=True, manifest=manifest)

        assert_equal((summary.delete_markers, summary.skipped), (0, 1))
        s3.delete_object.assert_not_called()

    def test_parallel_copy_bounds_queued_copies(self, s3, monkeypatch):
        """The listing is consumed only as fast as the workers free queue slots."""
        monkeypatch.setattr("config.COPY_QUEUE_PER_WORKER", 1)
        listed = []

        def pages():
            for index in range(5):
                listed.append(index)
                yield {"Contents": [{"Key": f"k{index}", "Size": 1}]}

        listed_at_copy = {}

        def copy(copy_source, *_args, **_kwargs):
            listed_at_copy[copy_source["Key"]] = len(listed)

        s3.get_paginator.return_value = _paginator(pages())
        s3.head_object.return_value = {"Metadata": {}}
        s3.get_object_acl.return_value = {"Owner": {"ID": "o"}, "Grants": []}
        s3.copy.side_effect = copy

        summary = S3Gateway(s3, max_workers=1).copy_objects("demo", "demo-relocate", "STANDARD")

        assert_equal(summary.copied, 5)
        for index in range(5):
            assert listed_at_copy[f"k{index}"] <= index + 2

    def test_ordered_copy_runs_oldest_first(self, s3, s3_gateway, manifest):
        """A versioned copy issues one copy per version, oldest first."""
        s3.get_paginator.return_value = _paginator(
            [{"Versions": [{"Key": "a", "VersionId": "v2", "Size": 2}, {"Key": "a", "VersionId": "v1", "Size": 1}]}]
        )
        s3.head_object.return_value = {"Metadata": {"owner": "me"}, "ContentType": "text/plain"}
        s3.get_object_acl.return_value = {"Owner": {"ID": "o"}, "Grants": []}

        summary = s3_gateway.copy_objects("demo", "demo-relocate", "STANDARD_IA", ordered=True, manifest=manifest)

        assert_equal(summary.copied, 2)
        assert_equal(summary.bytes_copied, 3)
        copy_sources = [call.args[0] for call in s3.copy.call_args_list]
        assert_equal(
            copy_sources,
            [{"Bucket": "demo", "Key": "a", "VersionId": "v1"}, {"Bucket": "demo", "Key": "a", "VersionId": "v2"}],
        )
        extra_args = s3.copy.call_args_list[0].kwargs["ExtraArgs"]
        assert_equal(extra_args["StorageClass"], "STANDARD_IA")
        assert_equal(extra_args["MetadataDirective"], "REPLACE")
        assert_equal(extra_args["Metadata"], {"owner": "me"})
        assert_equal(extra_args["ContentType"], "text/plain")
        assert manifest.is_copied("s3://demo/a#v1")
        assert manifest.is_copied("s3://demo/a#v2")

    def test_copy_skips_objects_in_manifest(self, s3, s3_gateway, manifest):
        """Objects already recorded as copied are not copied again."""
        manifest.record(ManifestEntry(source="s3://demo/a", destination="s3://demo-relocate/a", start="s", end="e"))
        s3.get_paginator.return_value = _paginator([{"Contents": [{"Key": "a", "Size": 1}, {"Key": "b", "Size": 1}]}])
        s3.head_object.return_value = {"Metadata": {}}
        s3.get_object_acl.return_value = {"Owner": {"ID": "o"}, "Grants": []}

        summary = s3_gateway.copy_objects("demo", "demo-relocate", "STANDARD", manifest=manifest)

        assert_equal((summary.copied, summary.skipped), (1, 1))
        s3.copy.assert_called_once()
        assert_equal(s3.copy.call_args.args[0], {"Bucket": "demo", "Key": "b"})

    def test_copy_tolerates_disabled_acls(self, s3, s3_gateway):
        """Buckets with object ownership enforced still copy."""
        s3.get_paginator.return_value = _paginator([{"Contents": [{"Key": "a", "Size": 1}]}])
        s3.head_object.return_value = {"Metadata": {}}
        s3.get_object_acl.side_effect = _client_error("AccessControlListNotSupported")

        summary = s3_gateway.copy_objects("demo", "demo-relocate", "STANDARD")

        assert_equal(summary.copied, 1)
        s3.put_object_acl.assert_not_called()

    def test_copy_failure_is_recorded_and_raised(self, s3, s3_gateway, manifest):
        """A failed copy is logged as an error row and fails the bulk copy."""
        s3.get_paginator.return_value = _paginator([{"Contents": [{"Key": "a", "Size": 1}]}])
        s3.head_object.return_value = {"Metadata": {}}
        s3.copy.side_effect = _client_error("AccessDenied", "CopyObject")

        with pytest.raises(GatewayError) as exc_info:
            s3_gateway.copy_objects("demo", "demo-relocate", "STANDARD", manifest=manifest)

        assert_equal(exc_info.value.kind, ErrorKind.ACCESS_DENIED)
        assert not manifest.is_copied("s3://demo/a")
        assert ",error," in manifest.path.read_text()
